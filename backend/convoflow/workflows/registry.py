# backend/convoflow/workflows/registry.py

import logging
from typing import Dict, List, Optional, Set

from convoflow.models.session import Session
from convoflow.models.workflow import WorkflowDefinition, WorkflowKind
from convoflow.workflows.errors import WorkflowDefinitionError, WorkflowNotFoundError
from convoflow.workflows.validator import validate_definition

logger = logging.getLogger(__name__)


class WorkflowRegistry:
    """
    Catalog of workflow definitions, populated at startup.

    Definitions are validated on registration so authoring defects surface
    when the application boots rather than mid-conversation.
    """

    def __init__(self, service_names: Optional[Set[str]] = None):
        self._definitions: Dict[str, WorkflowDefinition] = {}
        self._disabled: Set[str] = set()
        # When provided, service steps must reference one of these services.
        self._service_names = service_names

    def register(self, definition: WorkflowDefinition) -> None:
        problems = validate_definition(definition)
        if self._service_names is not None:
            for step in definition.steps:
                if step.service and step.service.service not in self._service_names:
                    problems.append(f"step '{step.id}' uses unknown service '{step.service.service}'")
        if problems:
            raise WorkflowDefinitionError(definition.id, problems)

        if definition.id in self._definitions:
            logger.warning(f"Workflow '{definition.id}' is being replaced in the registry.")
        self._definitions[definition.id] = definition
        logger.info(f"Registered workflow '{definition.id}' v{definition.version} ({len(definition.steps)} steps)")

    def get(self, workflow_id: str) -> WorkflowDefinition:
        try:
            return self._definitions[workflow_id]
        except KeyError:
            raise WorkflowNotFoundError(workflow_id)

    def has(self, workflow_id: str) -> bool:
        return workflow_id in self._definitions

    def all(self) -> List[WorkflowDefinition]:
        return list(self._definitions.values())

    def enable(self, workflow_id: str) -> None:
        self.get(workflow_id)
        self._disabled.discard(workflow_id)

    def disable(self, workflow_id: str) -> None:
        self.get(workflow_id)
        self._disabled.add(workflow_id)

    def is_enabled(self, workflow_id: str) -> bool:
        return workflow_id in self._definitions and workflow_id not in self._disabled

    def system_workflow(self, workflow_id: str = "onboarding") -> WorkflowDefinition:
        definition = self.get(workflow_id)
        if definition.kind != WorkflowKind.SYSTEM:
            raise WorkflowNotFoundError(workflow_id)
        return definition

    def list_available(self, session: Session) -> List[WorkflowDefinition]:
        """User workflows this session may start, in registration order."""
        available = []
        for definition in self._definitions.values():
            if definition.kind != WorkflowKind.USER or not self.is_enabled(definition.id):
                continue
            if definition.config.requires_verification and not session.is_verified:
                continue
            available.append(definition)
        return available
