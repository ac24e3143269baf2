# backend/convoflow/services/state_controller.py

import logging
from typing import Any, Dict, Optional

from convoflow.models.session import BotState, Session
from convoflow.utils.metrics import state_transition_counter
from convoflow.workflows.errors import InvalidTransitionError

logger = logging.getLogger(__name__)

VALID_TRANSITIONS = {
    BotState.UNVERIFIED: {BotState.SYSTEM_WORKFLOW, BotState.IDLE},
    # Back to UNVERIFIED when an abandoned onboarding times out
    BotState.SYSTEM_WORKFLOW: {BotState.IDLE, BotState.UNVERIFIED},
    BotState.IDLE: {
        BotState.MENU_DISPLAYED,
        BotState.USER_WORKFLOW,
        BotState.AI_PROCESSING,
        BotState.AI_WAITING_CONFIRM,
    },
    BotState.MENU_DISPLAYED: {BotState.IDLE, BotState.USER_WORKFLOW},
    # MENU_DISPLAYED when the user opens the menu mid-workflow
    BotState.USER_WORKFLOW: {BotState.IDLE, BotState.MENU_DISPLAYED},
    BotState.AI_PROCESSING: {BotState.IDLE, BotState.AI_WAITING_CONFIRM},
    BotState.AI_WAITING_CONFIRM: {BotState.IDLE, BotState.USER_WORKFLOW, BotState.MENU_DISPLAYED},
}


class StateController:
    """Applies bot state transitions to a session, enforcing the transition table."""

    def can_transition(self, from_state: BotState, to_state: BotState) -> bool:
        return from_state == to_state or to_state in VALID_TRANSITIONS.get(from_state, set())

    def transition(
        self,
        session: Session,
        to_state: BotState,
        trigger: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Moves the session to `to_state`. Staying in the same state is a no-op
        that keeps the state data unless `data` is given.

        Raises:
            InvalidTransitionError: if the table does not allow the move.
        """
        from_state = session.bot_state
        if from_state == to_state:
            if data is not None:
                session.state_data = data
            return

        if not self.can_transition(from_state, to_state):
            logger.warning(f"Rejected transition {from_state.value} -> {to_state.value} (trigger={trigger})")
            raise InvalidTransitionError(from_state, to_state, trigger)

        session.bot_state = to_state
        session.state_data = data if data is not None else {}
        state_transition_counter.labels(from_state=from_state.value, to_state=to_state.value).inc()
        logger.info(f"Session {session.id}: {from_state.value} -> {to_state.value} (trigger={trigger})")
