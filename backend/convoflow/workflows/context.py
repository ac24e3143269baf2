# backend/convoflow/workflows/context.py

import copy
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from convoflow.workflows.conditions import UNDEFINED, resolve_path


class WorkflowContext:
    """
    Live state of one workflow activation: current step, collected answers,
    visited steps and timestamps.

    A context is owned by a single WorkflowExecutor. Between messages it only
    exists as a snapshot (see to_snapshot/restore), which is what the session
    record, navigation frames and crash recovery all store.
    """

    def __init__(
        self,
        workflow_id: str,
        current_step_id: str,
        data: Optional[Dict[str, Any]] = None,
        history: Optional[List[str]] = None,
        started_at: Optional[datetime] = None,
        last_activity_at: Optional[datetime] = None,
        session_data: Optional[Dict[str, Any]] = None,
    ):
        now = datetime.utcnow()
        self.workflow_id = workflow_id
        self.current_step_id = current_step_id
        self.data: Dict[str, Any] = data if data is not None else {}
        self.history: List[str] = history if history is not None else [current_step_id]
        self.started_at = started_at or now
        self.last_activity_at = last_activity_at or self.started_at
        # Read-only view of the session's persistent data, used for rendering.
        self.session_data: Dict[str, Any] = session_data or {}
        # Bound by the executor; never part of a snapshot.
        self.definition = None

    def get(self, path: str, default: Any = None) -> Any:
        value = resolve_path(self.data, path)
        return default if value is UNDEFINED else value

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)

    def move_to(self, step_id: str, now: Optional[datetime] = None) -> None:
        self.current_step_id = step_id
        self.history.append(step_id)
        self.touch(now)

    def touch(self, now: Optional[datetime] = None) -> None:
        self.last_activity_at = now or datetime.utcnow()

    def is_timed_out(self, now: datetime, timeout_seconds: int) -> bool:
        return now - self.last_activity_at > timedelta(seconds=timeout_seconds)

    def template_values(self) -> Dict[str, Any]:
        """Values available to prompt placeholders; workflow data wins over session data."""
        return {**self.session_data, **self.data}

    def to_snapshot(self) -> Dict[str, Any]:
        """A JSON-serializable deep copy of this context."""
        return {
            "workflow_id": self.workflow_id,
            "current_step_id": self.current_step_id,
            "data": copy.deepcopy(self.data),
            "history": list(self.history),
            "started_at": self.started_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat(),
        }

    @classmethod
    def restore(cls, snapshot: Dict[str, Any], session_data: Optional[Dict[str, Any]] = None) -> "WorkflowContext":
        return cls(
            workflow_id=snapshot["workflow_id"],
            current_step_id=snapshot["current_step_id"],
            data=copy.deepcopy(snapshot.get("data", {})),
            history=list(snapshot.get("history", [snapshot["current_step_id"]])),
            started_at=_parse_ts(snapshot.get("started_at")),
            last_activity_at=_parse_ts(snapshot.get("last_activity_at")),
            session_data=session_data,
        )


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)
