from __future__ import annotations

from datetime import datetime
from typing import AsyncIterator, Protocol

from comms_service.domain.entities.message import Message
from comms_service.domain.value_objects.enums import MessageStatus


class MessageReader(Protocol):
    async def get_by_id(self, message_id: str) -> Message | None: ...

    def list_for_user(self, user_id: str) -> AsyncIterator[Message]:
        """Yield every message the user sent or received, newest first."""
        ...

    async def list_for_conversation(self, conversation_id: str) -> list[Message]: ...


class MessageWriter(Protocol):
    async def put(self, message: Message) -> str: ...

    async def set_status(
        self,
        message_id: str,
        status: MessageStatus,
        read_at: datetime | None = None,
    ) -> bool:
        """Update status. Return False if the message does not exist."""
        ...

    async def delete(self, message_id: str) -> bool:
        """Remove the message. Return False if it does not exist."""
        ...


class MessageStore(MessageReader, MessageWriter, Protocol):
    """Per-message access; no cross-message transactions are assumed."""
