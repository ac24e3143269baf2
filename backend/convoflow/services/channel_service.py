# backend/convoflow/services/channel_service.py

import logging
from typing import Awaitable, Callable, List, Optional

from convoflow.models.api import InboundMessage, OutboundMessage

# The channel adapter is the transport collaborator (WhatsApp, Telegram, a
# web widget...). The engine only hands it outbound messages; adapters that
# receive traffic call the registered handler with normalized messages.

logger = logging.getLogger(__name__)

MessageHandler = Callable[[InboundMessage], Awaitable[List[OutboundMessage]]]


class ChannelAdapter:
    channel = "generic"

    def __init__(self):
        self._handler: Optional[MessageHandler] = None

    async def send_message(self, destination: str, text: str) -> None:
        raise NotImplementedError

    def on_message_received(self, handler: MessageHandler) -> None:
        self._handler = handler

    def is_connected(self) -> bool:
        return True

    async def receive(self, message: InboundMessage) -> List[OutboundMessage]:
        """Hands an inbound message to the registered handler."""
        if self._handler is None:
            logger.warning(f"Dropping inbound {self.channel} message: no handler registered")
            return []
        return await self._handler(message)


class OutboxChannelAdapter(ChannelAdapter):
    """Keeps sent messages in memory; used when no real transport is wired (HTTP API, tests)."""

    channel = "outbox"

    def __init__(self, max_messages: int = 1000):
        super().__init__()
        self.max_messages = max_messages
        self.sent: List[OutboundMessage] = []

    async def send_message(self, destination: str, text: str) -> None:
        self.sent.append(OutboundMessage(destination=destination, text=text, channel=self.channel))
        if len(self.sent) > self.max_messages:
            del self.sent[: len(self.sent) - self.max_messages]
        logger.debug(f"Queued outbound message for {destination[:4]}... ({len(text)} chars)")
