from __future__ import annotations

from comms_service.application.exceptions import ConflictError, ForbiddenError, NotFoundError
from comms_service.domain.entities.message import Message


def assert_message_access(user_id: str, message: Message | None) -> Message:
    """Raise if the message doesn't exist or the user is neither sender nor recipient."""
    if message is None:
        raise NotFoundError("Message not found")
    if not message.involves(user_id):
        raise ForbiddenError("Not a participant of this message")
    return message


def assert_can_mark_read(user_id: str, message: Message) -> None:
    # Read state belongs to the recipient's copy.
    if not message.is_addressed_to(user_id):
        raise ForbiddenError("Only the recipient can mark a message as read")
    if message.is_group:
        raise ConflictError("Group messages have no per-recipient read state")


def assert_can_delete(user_id: str, message: Message) -> None:
    """Recipients may drop their copy; senders may only retract unread copies."""
    if message.is_addressed_to(user_id):
        return
    if message.sender_id != user_id:
        raise ForbiddenError("Not a participant of this message")
    if message.is_read:
        raise ForbiddenError("A message that has already been read cannot be retracted")
