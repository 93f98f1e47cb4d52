"""Derive conversations from a flat message set.

Conversations are never stored. Their identity is the pair
(other participant, optional context id), and the string form of that pair
is produced only by :func:`conversation_key`.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from comms_service.domain.entities.conversation import Conversation
from comms_service.domain.entities.message import Message

_KEY_SEPARATOR = ":"


def conversation_key(other_participant_id: str, context_id: str | None = None) -> str:
    if context_id:
        return f"{other_participant_id}{_KEY_SEPARATOR}{context_id}"
    return other_participant_id


def other_participant_id(message: Message, current_user_id: str) -> str:
    if message.is_addressed_to(current_user_id):
        return message.sender_id
    if message.receiver_id:
        return message.receiver_id
    # Legacy group record sent by the current user.
    return ",".join(sorted(message.receiver_ids))


def _timeline_order(message: Message) -> tuple:
    return (message.timestamp, message.id)


def group(messages: Iterable[Message], current_user_id: str) -> list[Conversation]:
    """Group messages into conversations for ``current_user_id``.

    Pure and deterministic: the same set of messages, in any order, yields an
    identical list.
    """
    buckets: dict[str, list[Message]] = defaultdict(list)
    participants: dict[str, tuple[str, str | None]] = {}

    for message in messages:
        other = other_participant_id(message, current_user_id)
        key = conversation_key(other, message.context_id)
        buckets[key].append(message)
        participants[key] = (other, message.context_id or None)

    conversations: list[Conversation] = []
    for key, bucket in buckets.items():
        ordered = tuple(sorted(bucket, key=_timeline_order, reverse=True))
        unread = sum(
            1
            for m in ordered
            if m.is_unread_for(current_user_id)
        )
        other, context_id = participants[key]
        conversations.append(
            Conversation(
                key=key,
                other_participant_id=other,
                context_id=context_id,
                messages=ordered,
                unread_count=unread,
            )
        )

    conversations.sort(key=lambda c: (c.last_message.timestamp, c.key), reverse=True)
    return conversations


def find(conversations: Iterable[Conversation], key: str) -> Conversation | None:
    for conversation in conversations:
        if conversation.key == key:
            return conversation
    return None


def total_unread(conversations: Iterable[Conversation]) -> int:
    return sum(c.unread_count for c in conversations)
