"""Shared test fixtures."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator

import pytest

from comms_service.application.dto.principal import Principal
from comms_service.application.exceptions import StoreError
from comms_service.domain.entities.message import Message
from comms_service.domain.value_objects.enums import (
    MessagePriority,
    MessageStatus,
    MessageType,
)
from comms_service.domain.value_objects.ids import new_message_id

BASE_TIME = datetime(2024, 9, 2, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def teacher_principal() -> Principal:
    return Principal(subject_id="teacher-1", name="Ms. Rivera", roles=["teacher"])


@pytest.fixture
def parent_principal() -> Principal:
    return Principal(subject_id="parent-1", name="Sam Okafor", roles=["parent"])


def at(seconds: int) -> datetime:
    return BASE_TIME + timedelta(seconds=seconds)


def make_message(
    *,
    message_id: str | None = None,
    sender_id: str = "teacher-1",
    sender_name: str | None = None,
    receiver_id: str = "parent-1",
    receiver_ids: tuple[str, ...] = (),
    title: str = "Hello",
    content: str = "hello",
    type: MessageType = MessageType.CHAT,
    priority: MessagePriority = MessagePriority.NORMAL,
    status: MessageStatus = MessageStatus.UNREAD,
    timestamp: datetime | None = None,
    context_id: str | None = None,
    conversation_id: str | None = None,
    reply_to_id: str | None = None,
    metadata: dict[str, str] | None = None,
) -> Message:
    ts = timestamp or BASE_TIME
    return Message(
        id=message_id or new_message_id(),
        type=type,
        priority=priority,
        title=title,
        content=content,
        sender_id=sender_id,
        sender_name=sender_name or sender_id,
        receiver_id=receiver_id,
        receiver_ids=receiver_ids,
        timestamp=ts,
        status=status,
        read_at=ts if status == MessageStatus.READ else None,
        conversation_id=conversation_id,
        reply_to_id=reply_to_id,
        context_id=context_id,
        metadata=metadata or {},
    )


@dataclass
class FakeMessageStore:
    """In-memory MessageStore with failure injection."""

    _messages: dict[str, Message] = field(default_factory=dict)
    fail_reads: bool = False
    fail_put_for: set[str] = field(default_factory=set)
    fail_status_for: set[str] = field(default_factory=set)
    fail_delete_for: set[str] = field(default_factory=set)
    read_gate: asyncio.Event | None = None
    put_calls: list[str] = field(default_factory=list)
    list_calls: int = 0

    def add(self, *messages: Message) -> None:
        for m in messages:
            self._messages[m.id] = m

    def get(self, message_id: str) -> Message | None:
        return self._messages.get(message_id)

    @property
    def messages(self) -> list[Message]:
        return list(self._messages.values())

    async def get_by_id(self, message_id: str) -> Message | None:
        return self._messages.get(message_id)

    async def list_for_user(self, user_id: str) -> AsyncIterator[Message]:
        self.list_calls += 1
        if self.fail_reads:
            raise StoreError("Message store unavailable")
        # Snapshot taken when the read starts; the gate lets tests interleave writes.
        snapshot = sorted(
            (m for m in self._messages.values() if m.involves(user_id)),
            key=lambda m: (m.timestamp, m.id),
            reverse=True,
        )
        if self.read_gate is not None:
            await self.read_gate.wait()
        for m in snapshot:
            yield m

    async def list_for_conversation(self, conversation_id: str) -> list[Message]:
        return sorted(
            (m for m in self._messages.values() if m.conversation_id == conversation_id),
            key=lambda m: (m.timestamp, m.id),
        )

    async def put(self, message: Message) -> str:
        self.put_calls.append(message.receiver_id)
        if message.receiver_id in self.fail_put_for:
            raise StoreError(f"write failed for {message.receiver_id}")
        self._messages[message.id] = message
        return message.id

    async def set_status(
        self,
        message_id: str,
        status: MessageStatus,
        read_at: datetime | None = None,
    ) -> bool:
        if message_id in self.fail_status_for:
            raise StoreError("write failed")
        current = self._messages.get(message_id)
        if current is None:
            return False
        self._messages[message_id] = replace(current, status=status, read_at=read_at)
        return True

    async def delete(self, message_id: str) -> bool:
        if message_id in self.fail_delete_for:
            raise StoreError("delete failed")
        return self._messages.pop(message_id, None) is not None


@dataclass
class FakeNotifier:
    sent: list[tuple[str, str, str]] = field(default_factory=list)
    fail: bool = False

    async def notify(self, recipient_id: str, title: str, body_preview: str) -> None:
        if self.fail:
            raise ConnectionError("push gateway down")
        self.sent.append((recipient_id, title, body_preview))


@dataclass
class FakeUserDirectory:
    names: dict[str, str] = field(default_factory=lambda: {
        "teacher-1": "Ms. Rivera",
        "parent-1": "Sam Okafor",
        "parent-2": "Lee Chen",
    })
    lookups: int = 0

    async def resolve_user_name(self, user_id: str) -> str:
        self.lookups += 1
        return self.names.get(user_id, user_id)


@dataclass
class FixedClock:
    """Clock that only moves when told to."""

    current: datetime = BASE_TIME

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
