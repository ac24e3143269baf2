# backend/convoflow/workflows/errors.py

# Exception hierarchy for the workflow engine. Expected outcomes (invalid user
# input, an unmatched branch) are returned as values, never raised; these
# exceptions cover authoring defects and collaborator failures only.


class ConvoFlowError(Exception):
    """Base class for every engine error."""


class WorkflowNotFoundError(ConvoFlowError):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' is not registered")


class StepNotFoundError(ConvoFlowError):
    def __init__(self, workflow_id: str, step_id: str):
        self.workflow_id = workflow_id
        self.step_id = step_id
        super().__init__(f"Step '{step_id}' does not exist in workflow '{workflow_id}'")


class WorkflowDefinitionError(ConvoFlowError):
    """Raised at registration time when a definition is inconsistent."""

    def __init__(self, workflow_id: str, problems: list):
        self.workflow_id = workflow_id
        self.problems = problems
        super().__init__(f"Invalid workflow '{workflow_id}': " + "; ".join(problems))


class ConditionParseError(ConvoFlowError):
    """Raised when a branch condition is not a valid expression."""

    def __init__(self, expression: str, reason: str, position: int | None = None):
        self.expression = expression
        self.reason = reason
        self.position = position
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"Invalid condition {expression!r}{where}: {reason}")


class InvalidTransitionError(ConvoFlowError):
    def __init__(self, from_state, to_state, trigger: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.trigger = trigger
        super().__init__(f"Invalid bot state transition {from_state.value} -> {to_state.value} ({trigger})")


class ServiceCallError(ConvoFlowError):
    """A business service raised or could not be reached."""

    def __init__(self, service: str, method: str, reason: str):
        self.service = service
        self.method = method
        self.reason = reason
        super().__init__(f"{service}.{method} failed: {reason}")


class ServiceNotFoundError(ServiceCallError):
    def __init__(self, service: str, method: str):
        super().__init__(service, method, "service or method is not registered")


class ServiceUnavailableError(ServiceCallError):
    """Transient failure; calls raising this are retried."""
