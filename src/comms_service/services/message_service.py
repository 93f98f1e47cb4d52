from __future__ import annotations

import logging
from datetime import datetime, timezone

from comms_service.application.dto.message import MarkAllReadResult
from comms_service.application.exceptions import AppError, NotFoundError
from comms_service.application.policies.permissions import (
    assert_can_delete,
    assert_can_mark_read,
    assert_message_access,
)
from comms_service.application.repositories.message import MessageReader, MessageStore
from comms_service.domain.entities.conversation import Conversation
from comms_service.domain.entities.message import Message
from comms_service.domain.value_objects.enums import MessageStatus, MessageType
from comms_service.services import conversation_aggregator, inbox_filter

logger = logging.getLogger(__name__)


async def load_user_messages(user_id: str, store: MessageReader) -> list[Message]:
    """Drain ``list_for_user`` into a list, newest first."""
    messages = [m async for m in store.list_for_user(user_id)]
    messages.sort(key=lambda m: (m.timestamp, m.id), reverse=True)
    return messages


async def get_message(message_id: str, user_id: str, store: MessageReader) -> Message:
    message = await store.get_by_id(message_id)
    return assert_message_access(user_id, message)


async def get_quoted_original(message_id: str, user_id: str, store: MessageReader) -> Message:
    """Return the message that ``message_id`` replies to."""
    message = await get_message(message_id, user_id, store)
    if not message.reply_to_id:
        raise NotFoundError("Message is not a reply")
    original = await store.get_by_id(message.reply_to_id)
    if original is None:
        raise NotFoundError("Quoted message not found")
    return assert_message_access(user_id, original)


async def mark_read(
    message_id: str,
    user_id: str,
    store: MessageStore,
    now: datetime | None = None,
) -> Message:
    message = await get_message(message_id, user_id, store)
    assert_can_mark_read(user_id, message)
    if message.is_read:
        return message

    read = message.mark_read(now or datetime.now(timezone.utc))
    found = await store.set_status(message_id, MessageStatus.READ, read.read_at)
    if not found:
        raise NotFoundError("Message not found")
    return read


async def delete_message(message_id: str, user_id: str, store: MessageStore) -> None:
    message = await get_message(message_id, user_id, store)
    assert_can_delete(user_id, message)
    if not await store.delete(message_id):
        raise NotFoundError("Message not found")


async def list_inbox(
    user_id: str,
    store: MessageReader,
    *,
    message_type: MessageType | None = None,
    search_text: str = "",
) -> list[Message]:
    messages = await load_user_messages(user_id, store)
    return inbox_filter.apply_filters(messages, message_type, search_text)


async def unread_count(user_id: str, store: MessageReader) -> int:
    messages = await load_user_messages(user_id, store)
    return sum(1 for m in messages if m.is_unread_for(user_id))


async def list_conversations(
    user_id: str,
    store: MessageReader,
    *,
    search_text: str = "",
) -> list[Conversation]:
    messages = await load_user_messages(user_id, store)
    conversations = conversation_aggregator.group(messages, user_id)
    return inbox_filter.filter_conversations(conversations, search_text)


async def get_conversation(key: str, user_id: str, store: MessageReader) -> Conversation:
    messages = await load_user_messages(user_id, store)
    conversation = conversation_aggregator.find(
        conversation_aggregator.group(messages, user_id), key,
    )
    if conversation is None:
        raise NotFoundError("Conversation not found")
    return conversation


async def list_thread(conversation_id: str, user_id: str, store: MessageReader) -> list[Message]:
    """Messages sharing an explicit ``conversation_id`` that the user can see, oldest first."""
    messages = await store.list_for_conversation(conversation_id)
    visible = [m for m in messages if m.involves(user_id)]
    if not visible:
        raise NotFoundError("Conversation not found")
    return visible


async def mark_all_read(user_id: str, store: MessageStore) -> MarkAllReadResult:
    """Mark every unread message addressed to ``user_id``; failures are collected, not raised."""
    now = datetime.now(timezone.utc)
    marked: list[str] = []
    failed: dict[str, str] = {}
    for message in await load_user_messages(user_id, store):
        if not message.is_unread_for(user_id):
            continue
        try:
            await mark_read(message.id, user_id, store, now)
        except AppError as exc:
            failed[message.id] = exc.detail or type(exc).__name__
        else:
            marked.append(message.id)
    if failed:
        logger.warning(
            "Marked %d message(s) read for %s; %d failed", len(marked), user_id, len(failed),
        )
    return MarkAllReadResult(marked=tuple(marked), failed=failed)
