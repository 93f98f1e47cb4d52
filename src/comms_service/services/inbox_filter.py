from __future__ import annotations

from typing import Iterable

from comms_service.domain.entities.conversation import Conversation
from comms_service.domain.entities.message import Message
from comms_service.domain.value_objects.enums import MessageType


def matches_type(message: Message, selected: MessageType | None) -> bool:
    return selected is None or message.type == selected


def matches_search(message: Message, search_text: str) -> bool:
    needle = search_text.strip().casefold()
    if not needle:
        return True
    return (
        needle in message.title.casefold()
        or needle in message.content.casefold()
        or needle in message.sender_name.casefold()
    )


def apply_filters(
    messages: Iterable[Message],
    selected_type: MessageType | None = None,
    search_text: str = "",
) -> list[Message]:
    return [
        m
        for m in messages
        if matches_type(m, selected_type) and matches_search(m, search_text)
    ]


def filter_conversations(
    conversations: Iterable[Conversation],
    search_text: str,
) -> list[Conversation]:
    """Keep conversations whose participant, context or any message matches."""
    needle = search_text.strip().casefold()
    if not needle:
        return list(conversations)
    return [
        c
        for c in conversations
        if needle in c.other_participant_id.casefold()
        or (c.context_id is not None and needle in c.context_id.casefold())
        or any(matches_search(m, search_text) for m in c.messages)
    ]
