from __future__ import annotations

from dataclasses import dataclass

from comms_service.domain.entities.message import Message


@dataclass(frozen=True, slots=True)
class Conversation:
    """Derived grouping of messages with one participant, optionally scoped to a context.

    Never stored; rebuilt from the message set on every reconciliation pass.
    """

    key: str
    other_participant_id: str
    context_id: str | None
    messages: tuple[Message, ...]
    unread_count: int

    @property
    def last_message(self) -> Message:
        return self.messages[0]
