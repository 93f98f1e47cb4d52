from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Mapping

from comms_service.domain.value_objects.enums import (
    MessagePriority,
    MessageStatus,
    MessageType,
)


@dataclass(frozen=True, slots=True)
class Attachment:
    name: str
    url: str
    type: str


@dataclass(frozen=True, slots=True)
class Message:
    """A single persisted message addressed to one recipient.

    Everything except ``status``/``read_at`` is fixed once the message is
    stored; corrections are new messages.
    """

    id: str
    type: MessageType
    priority: MessagePriority
    title: str
    content: str
    sender_id: str
    sender_name: str
    receiver_id: str
    timestamp: datetime
    receiver_ids: tuple[str, ...] = ()
    status: MessageStatus = MessageStatus.UNREAD
    read_at: datetime | None = None
    conversation_id: str | None = None
    reply_to_id: str | None = None
    context_id: str | None = None
    context_type: str | None = None
    attachments: tuple[Attachment, ...] = ()
    metadata: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_read(self) -> bool:
        return self.status == MessageStatus.READ

    @property
    def is_group(self) -> bool:
        """Legacy record addressed to several users at once."""
        return bool(self.receiver_ids)

    @property
    def is_high_priority(self) -> bool:
        return self.priority in (MessagePriority.HIGH, MessagePriority.URGENT)

    @property
    def is_urgent(self) -> bool:
        return self.priority == MessagePriority.URGENT

    @property
    def requires_confirmation(self) -> bool:
        return self.metadata.get("requireConfirmation", "").lower() == "true"

    @property
    def recipients(self) -> tuple[str, ...]:
        if self.receiver_id:
            return (self.receiver_id,)
        return self.receiver_ids

    def is_addressed_to(self, user_id: str) -> bool:
        return self.receiver_id == user_id or user_id in self.receiver_ids

    def involves(self, user_id: str) -> bool:
        return self.sender_id == user_id or self.is_addressed_to(user_id)

    def is_unread_for(self, user_id: str) -> bool:
        # Legacy group records carry one status for every recipient and never count.
        return not self.is_read and not self.is_group and self.is_addressed_to(user_id)

    def mark_read(self, at: datetime) -> Message:
        """Return the READ version of this message. Already-read messages are returned as is."""
        if self.is_read:
            return self
        return replace(self, status=MessageStatus.READ, read_at=at)
