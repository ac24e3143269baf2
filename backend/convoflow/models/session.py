# backend/convoflow/models/session.py

import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.utcnow()


class BotState(str, Enum):
    """Top-level conversational states of a session."""
    UNVERIFIED = "unverified"
    IDLE = "idle"
    SYSTEM_WORKFLOW = "system_workflow"
    USER_WORKFLOW = "user_workflow"
    AI_PROCESSING = "ai_processing"
    AI_WAITING_CONFIRM = "ai_waiting_confirm"
    MENU_DISPLAYED = "menu_displayed"


class NavigationFrame(BaseModel):
    """
    A restorable snapshot of where the user was before moving forward.

    `context` holds a WorkflowContext snapshot (see workflows/context.py), so a
    frame can be restored verbatim by the `back` command.
    """
    workflow_id: str = Field(..., description="Workflow the user was in")
    step_id: str = Field(..., description="Step the user was on")
    context: Dict[str, Any] = Field(default_factory=dict, description="WorkflowContext snapshot")
    timestamp: datetime = Field(default_factory=utcnow)
    can_return: bool = Field(default=True, description="Whether `back` may restore this frame")


class Session(BaseModel):
    """
    Persistent per-conversation state, one per (channel, external user id).

    Sessions are never deleted: once they expire they are marked inactive and a
    fresh record is opened on the next inbound message.
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    channel: str = Field(default="whatsapp", description="Communication channel")
    external_user_id: str = Field(..., description="External user identifier (phone number)")
    user_id: Optional[str] = Field(default=None, description="Owning user once onboarded")

    bot_state: BotState = Field(default=BotState.UNVERIFIED)
    state_data: Dict[str, Any] = Field(default_factory=dict, description="Data attached to the current bot state")

    current_workflow_id: Optional[str] = None
    current_step_id: Optional[str] = None
    workflow_context: Optional[Dict[str, Any]] = Field(default=None, description="Active WorkflowContext snapshot")
    navigation_stack: List[NavigationFrame] = Field(default_factory=list)
    workflow_history: List[str] = Field(default_factory=list, description="Ids of finished workflow activations")

    data_bag: Dict[str, Any] = Field(default_factory=dict, description="Data surviving across workflow activations")
    language: str = Field(default="fr")
    is_verified: bool = False
    is_active: bool = True

    message_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    last_activity_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime = Field(default_factory=lambda: utcnow() + timedelta(hours=24))

    @property
    def has_active_workflow(self) -> bool:
        return self.current_workflow_id is not None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def touch(self, now: datetime, expiry_hours: int) -> None:
        """Record inbound activity and push the expiry horizon forward."""
        self.message_count += 1
        self.last_activity_at = now
        self.expires_at = now + timedelta(hours=expiry_hours)

    def clear_workflow(self) -> None:
        """Forget the active workflow activation and its navigation history."""
        self.current_workflow_id = None
        self.current_step_id = None
        self.workflow_context = None
        self.navigation_stack = []
