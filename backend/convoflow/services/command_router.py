# backend/convoflow/services/command_router.py

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from convoflow.config import commands as command_config
from convoflow.models.session import BotState
from convoflow.models.workflow import WorkflowDefinition
from convoflow.utils.metrics import command_counter

logger = logging.getLogger(__name__)


class CommandDecision(str, Enum):
    EXECUTE = "execute"  # run the command
    REJECT = "reject"    # answer "not allowed", change nothing
    IGNORE = "ignore"    # not a command here; let workflow/AI handling see the text


@dataclass(frozen=True)
class DetectedCommand:
    type: str
    token: str
    spec: Dict[str, Any]


class CommandRouter:
    """
    Detects system commands and decides whether they may run.

    Detection is a single dictionary lookup on the whole normalized message,
    so "menu" is a command but "show me the menu" is not.
    """

    def __init__(self, commands: Optional[Dict[str, Dict[str, Any]]] = None):
        self._commands = commands or command_config.SYSTEM_COMMANDS
        self._synonyms: Dict[str, str] = {}
        for command_type, spec in self._commands.items():
            for synonym in spec["synonyms"]:
                token = self.normalize(synonym)
                if token in self._synonyms and self._synonyms[token] != command_type:
                    raise ValueError(f"Synonym '{synonym}' is mapped to both {self._synonyms[token]} and {command_type}")
                self._synonyms[token] = command_type

    @staticmethod
    def normalize(text: Optional[str]) -> str:
        return " ".join((text or "").split()).lower()

    def detect(self, text: Optional[str]) -> Optional[DetectedCommand]:
        token = self.normalize(text)
        command_type = self._synonyms.get(token)
        if command_type is None:
            return None
        return DetectedCommand(type=command_type, token=token, spec=self._commands[command_type])

    def check_eligibility(
        self,
        command: DetectedCommand,
        state: BotState,
        workflow: Optional[WorkflowDefinition] = None,
    ) -> CommandDecision:
        """
        Args:
            command: The detected command
            state: The session's current bot state
            workflow: The active workflow definition, if any

        Returns:
            EXECUTE, REJECT (blocked by the active workflow) or IGNORE.
        """
        spec = command.spec
        decision = CommandDecision.EXECUTE

        if state in spec.get("blocked_in_states", []):
            decision = CommandDecision.IGNORE
        elif spec.get("scope") == command_config.WORKFLOW_ONLY and workflow is None:
            decision = CommandDecision.IGNORE
        elif workflow is not None and self._blocked_by_workflow(command, workflow):
            decision = CommandDecision.REJECT

        command_counter.labels(command=command.type, outcome=decision.value).inc()
        if decision != CommandDecision.EXECUTE:
            logger.info(
                f"Command '{command.type}' -> {decision.value} "
                f"(state={state.value}, workflow={workflow.id if workflow else None})"
            )
        return decision

    def _blocked_by_workflow(self, command: DetectedCommand, workflow: WorkflowDefinition) -> bool:
        if workflow.id in command.spec.get("blocked_in_workflows", []):
            return True
        config = workflow.config
        if command.type in config.blocked_commands:
            return True
        if config.allowed_commands is not None and command.type not in config.allowed_commands:
            return True
        if command.type == command_config.MENU and not config.allow_interruption:
            return True
        return False
