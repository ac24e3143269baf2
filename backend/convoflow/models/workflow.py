# backend/convoflow/models/workflow.py

"""
Immutable workflow definition types.

Definitions are authored in Python (see workflows/definitions.py) and loaded
once at startup. They are plain frozen dataclasses rather than pydantic models
because steps carry callables: dynamic prompts, computed choices, service
parameter builders and custom validators.

A step's `next` is one of:
- None: the workflow completes after this step
- a step id
- an ordered list of Branch(condition, step); the first true condition wins
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union


class StepType(str, Enum):
    MESSAGE = "message"
    INPUT = "input"
    CHOICE = "choice"
    SERVICE = "service"


class WorkflowKind(str, Enum):
    SYSTEM = "system"
    USER = "user"


@dataclass(frozen=True)
class StaticText:
    """A reference to a localized string key."""
    key: str


@dataclass(frozen=True)
class DynamicText:
    """
    A side-effect-free function of the WorkflowContext returning a string key
    (or literal text when no such key exists).
    """
    render: Callable[[Any], str]


Text = Union[StaticText, DynamicText]


def as_text(value: Union[str, Text, Callable[[Any], str], None]) -> Optional[Text]:
    """Coerce authoring shorthands: a str is a key, a callable is dynamic."""
    if value is None or isinstance(value, (StaticText, DynamicText)):
        return value
    if isinstance(value, str):
        return StaticText(value)
    if callable(value):
        return DynamicText(value)
    raise TypeError(f"Unsupported text value: {value!r}")


@dataclass(frozen=True)
class Choice:
    id: str
    value: str
    label: str  # string key or literal label


@dataclass(frozen=True)
class ValidationRule:
    required: bool = True
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    type: Optional[str] = None  # "number" | "email" | "phone"
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    custom: Optional[Callable[[str], Union[bool, str]]] = None


@dataclass(frozen=True)
class Branch:
    condition: str
    step: str


NextSpec = Union[None, str, Sequence[Branch]]


@dataclass(frozen=True)
class ServiceCall:
    service: str
    method: str
    params: Union[Dict[str, Any], Callable[[Any], Dict[str, Any]], None] = None
    progress_message: Optional[Text] = None

    def __post_init__(self):
        object.__setattr__(self, "progress_message", as_text(self.progress_message))


@dataclass(frozen=True)
class Step:
    id: str
    type: StepType
    prompt: Optional[Text] = None
    choices: Union[Sequence[Choice], Callable[[Any], Sequence[Choice]], None] = None
    validation: Optional[ValidationRule] = None
    next: NextSpec = None
    service: Optional[ServiceCall] = None
    error_step: Optional[str] = None
    can_go_back: bool = True
    restart_value: Optional[str] = None  # choice value that triggers a full reset

    def __post_init__(self):
        object.__setattr__(self, "prompt", as_text(self.prompt))
        if isinstance(self.next, list):
            object.__setattr__(self, "next", tuple(self.next))
        if isinstance(self.choices, list):
            object.__setattr__(self, "choices", tuple(self.choices))


@dataclass(frozen=True)
class WorkflowConfig:
    timeout_seconds: Optional[int] = None  # None falls back to the session timeout
    allow_interruption: bool = True
    allow_back: bool = True
    persist_progress: bool = True  # checkpoint the session before each service call
    requires_verification: bool = True
    verifies_session: bool = False
    allowed_commands: Optional[List[str]] = None  # None means every command
    blocked_commands: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProgressTrack:
    """Numbers the prompts of a workflow, e.g. "Registration 1/2"."""
    label: str  # string key or literal label
    total: int
    steps: Dict[str, int] = field(default_factory=dict)  # step id -> position

    def position(self, step_id: str) -> Optional[int]:
        return self.steps.get(step_id)


@dataclass(frozen=True)
class WorkflowDefinition:
    id: str
    name: str  # string key or literal name
    steps: Sequence[Step]
    kind: WorkflowKind = WorkflowKind.USER
    description: str = ""
    version: str = "1.0.0"
    config: WorkflowConfig = field(default_factory=WorkflowConfig)
    completion_message: Optional[Text] = None
    on_complete: Optional[Callable[[Any], Dict[str, Any]]] = None
    progress: Optional[ProgressTrack] = None

    def __post_init__(self):
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "completion_message", as_text(self.completion_message))

    @property
    def first_step_id(self) -> str:
        return self.steps[0].id

    def get_step(self, step_id: str) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def input_step_ids(self) -> List[str]:
        """Ids of steps whose data-bag entries come from user answers."""
        return [s.id for s in self.steps if s.type in (StepType.INPUT, StepType.CHOICE)]
