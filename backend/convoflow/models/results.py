# backend/convoflow/models/results.py

from typing import Optional, Dict, Any, Literal, Union
from pydantic import BaseModel, Field

# Step results form a closed, tagged union. Exactly one variant is produced
# each time a step is processed; the `kind` field is the tag.


class SendMessageResult(BaseModel):
    kind: Literal["send_message"] = "send_message"
    content: str
    menu: Optional[str] = Field(default=None, description="Rendered choice list, if any")
    auto_advance: bool = False

    @property
    def text(self) -> str:
        return f"{self.content}\n\n{self.menu}" if self.menu else self.content


class CallServiceResult(BaseModel):
    kind: Literal["call_service"] = "call_service"
    step_id: str
    service: str
    method: str
    params: Dict[str, Any] = Field(default_factory=dict)
    progress_message: Optional[str] = None


class CompleteResult(BaseModel):
    kind: Literal["complete"] = "complete"
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    unresolved: bool = Field(default=False, description="True when no branch matched")


class ValidationErrorResult(BaseModel):
    kind: Literal["validation_error"] = "validation_error"
    message: str
    step_id: str
    error_code: Optional[str] = None


class ServiceFailureResult(BaseModel):
    kind: Literal["service_failure"] = "service_failure"
    message: str
    step_id: str
    error: str
    retry: bool = True


StepResult = Union[
    SendMessageResult,
    CallServiceResult,
    CompleteResult,
    ValidationErrorResult,
    ServiceFailureResult,
]


class ServiceResult(BaseModel):
    """
    The schema-validated payload every business service returns.

    Services may return a ServiceResult or a plain dict; dicts are validated
    into this model by the ServiceRegistry.
    """
    status: Literal["ok", "error"] = "ok"
    data: Dict[str, Any] = Field(default_factory=dict)
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"
