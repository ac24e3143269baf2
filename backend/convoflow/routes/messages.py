# backend/convoflow/routes/messages.py

import structlog
from fastapi import APIRouter, Depends, HTTPException

from convoflow.models.api import InboundMessage, MessageResponse
from convoflow.utils.dependencies import Container, get_container
from convoflow.utils.metrics import response_time_histogram

# This file defines the inbound message endpoint. Channel adapters (or any
# HTTP client) post normalized messages here; the response carries the replies
# the bot produced and where the conversation now stands.

router = APIRouter(
    tags=["Messages"]
)

log = structlog.get_logger(__name__)


@router.post("/messages", response_model=MessageResponse)
async def receive_message(message: InboundMessage, container: Container = Depends(get_container)):
    """Processes one inbound message through the conversation engine."""
    with response_time_histogram.labels(endpoint="messages").time():
        log.info("Inbound message received.", channel=message.channel, text_length=len(message.text))
        replies = await container.orchestrator.process_message(message)

        session = await container.sessions.get_active(message.channel, message.external_user_id)
        if session is None:
            log.error("Session vanished after processing.", channel=message.channel)
            raise HTTPException(status_code=500, detail="Session could not be loaded")

        log.info(
            "Inbound message processed.",
            session_id=session.id,
            bot_state=session.bot_state.value,
            workflow=session.current_workflow_id,
            replies=len(replies),
        )
        return MessageResponse(
            session_id=session.id,
            bot_state=session.bot_state.value,
            current_workflow_id=session.current_workflow_id,
            current_step_id=session.current_step_id,
            messages=replies,
        )
