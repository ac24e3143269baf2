# backend/convoflow/models/api.py

from pydantic import BaseModel, Field
from typing import List, Dict, Any, Optional
from datetime import datetime

# This file contains Pydantic models that define the structure of data for
# API requests and responses, and of normalized channel messages.

class InboundMessage(BaseModel):
    """A message received from a channel, normalized by its adapter."""
    channel: str = Field(default="whatsapp")
    external_user_id: str = Field(..., min_length=1, max_length=64)
    text: str = Field(default="", max_length=4096)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)

class OutboundMessage(BaseModel):
    destination: str
    text: str
    channel: str = "whatsapp"

class MessageResponse(BaseModel):
    session_id: str
    bot_state: str
    current_workflow_id: Optional[str] = None
    current_step_id: Optional[str] = None
    messages: List[OutboundMessage]

class APIResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Dict] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    version: str
