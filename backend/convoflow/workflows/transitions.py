# backend/convoflow/workflows/transitions.py

import logging
from typing import Any, Dict, Optional

from convoflow.models.workflow import NextSpec
from convoflow.workflows.conditions import parse_condition
from convoflow.workflows.errors import ConditionParseError

logger = logging.getLogger(__name__)


class TransitionResolver:
    """
    Maps a step's `next` specification and the current data bag to the id of
    the next step. Returns None when the workflow should end here, either
    because `next` is undefined or because no branch matched.
    """

    def resolve(self, next_spec: NextSpec, data: Dict[str, Any], step_id: str = "") -> Optional[str]:
        if next_spec is None:
            return None
        if isinstance(next_spec, str):
            return next_spec

        for branch in next_spec:
            try:
                if parse_condition(branch.condition).evaluate(data):
                    return branch.step
            except ConditionParseError as e:
                # Definitions are validated at registration; reaching this is an authoring defect.
                logger.error(f"Skipping unparsable condition on step '{step_id}': {e}")

        logger.warning(
            f"No transition matched for step '{step_id}' "
            f"(conditions: {[b.condition for b in next_spec]})"
        )
        return None

    def is_unresolved(self, next_spec: NextSpec, resolved: Optional[str]) -> bool:
        """True when a branch list exists but nothing matched."""
        return resolved is None and next_spec is not None and not isinstance(next_spec, str)


