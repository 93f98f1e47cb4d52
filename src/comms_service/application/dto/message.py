from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from comms_service.domain.entities.message import Attachment, Message
from comms_service.domain.value_objects.enums import MessagePriority, MessageType


@dataclass(frozen=True, slots=True)
class ComposeMessageDTO:
    title: str
    content: str
    recipient_ids: tuple[str, ...] = ()
    type: MessageType = MessageType.CHAT
    priority: MessagePriority = MessagePriority.NORMAL
    attachments: tuple[Attachment, ...] = ()
    metadata: Mapping[str, str] = field(default_factory=dict)
    conversation_id: str | None = None
    reply_to_id: str | None = None
    context_id: str | None = None
    context_type: str | None = None


@dataclass(frozen=True, slots=True)
class RecipientOutcome:
    recipient_id: str
    message: Message | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.message is not None


@dataclass(frozen=True, slots=True)
class SendResult:
    """Per-recipient outcome of one logical send."""

    outcomes: tuple[RecipientOutcome, ...]

    @property
    def messages(self) -> list[Message]:
        return [o.message for o in self.outcomes if o.message is not None]

    @property
    def sent_ids(self) -> list[str]:
        return [m.id for m in self.messages]

    @property
    def failed_recipients(self) -> list[str]:
        return [o.recipient_id for o in self.outcomes if not o.ok]

    @property
    def all_succeeded(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def partial(self) -> bool:
        """Some, but not all, recipients got their copy."""
        succeeded = sum(1 for o in self.outcomes if o.ok)
        return 0 < succeeded < len(self.outcomes)


@dataclass(frozen=True, slots=True)
class MarkAllReadResult:
    marked: tuple[str, ...] = ()
    failed: Mapping[str, str] = field(default_factory=dict)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed
