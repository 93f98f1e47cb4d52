"""Per-user inbox session: the authoritative in-memory view of one user's messages.

Every state change goes through :meth:`InboxSession._commit`, which is
synchronous and therefore atomic on the event loop. Store calls are the only
suspension points. Local mutations are applied optimistically and recorded as
pending so that a snapshot whose read began before the mutation was confirmed
cannot revert it.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from types import TracebackType
from typing import AsyncIterator, Awaitable, Iterable, Mapping, Self, Sequence

from comms_service.application.dto.message import (
    ComposeMessageDTO,
    MarkAllReadResult,
    SendResult,
)
from comms_service.application.exceptions import AppError, NotFoundError, StoreError
from comms_service.application.policies.permissions import (
    assert_can_delete,
    assert_can_mark_read,
)
from comms_service.application.ports.clock import Clock, SystemClock
from comms_service.application.repositories.message import MessageStore
from comms_service.domain.entities.conversation import Conversation
from comms_service.domain.entities.message import Attachment, Message
from comms_service.domain.value_objects.enums import (
    InboxStatus,
    MessagePriority,
    MessageStatus,
    MessageType,
)
from comms_service.services import conversation_aggregator, inbox_filter
from comms_service.services.compose_service import ComposeService
from comms_service.services.message_service import load_user_messages

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = 60.0
# Confirmed writes a store read keeps missing are dropped after this many reads.
MAX_LAGGING_READS = 3


@dataclass(frozen=True, slots=True)
class InboxState:
    status: InboxStatus = InboxStatus.IDLE
    messages: tuple[Message, ...] = ()
    conversations: tuple[Conversation, ...] = ()
    filtered_messages: tuple[Message, ...] = ()
    type_filter: MessageType | None = None
    search_text: str = ""
    unread_count: int = 0
    error: str | None = None

    @property
    def is_loading(self) -> bool:
        return self.status == InboxStatus.LOADING


class MutationKind(StrEnum):
    READ = "read"
    DELETE = "delete"
    SENT = "sent"


@dataclass(slots=True, eq=False)
class PendingMutation:
    """A local change not yet known to be reflected in the store.

    ``message`` is the pre-mutation message for READ/DELETE and the new
    message for SENT. ``confirmed_after`` holds the sequence number of the
    last snapshot read started before the store confirmed the write.
    ``lagging_reads`` counts later snapshots that still did not show the
    change; the store may lag its own writes for a while.
    """

    kind: MutationKind
    message: Message
    read_at: datetime | None = None
    confirmed_after: int | None = None
    lagging_reads: int = 0

    @property
    def message_id(self) -> str:
        return self.message.id

    def apply(self, by_id: dict[str, Message]) -> None:
        mid = self.message.id
        if self.kind == MutationKind.READ:
            current = by_id.get(mid)
            if current is not None and self.read_at is not None:
                by_id[mid] = current.mark_read(self.read_at)
        elif self.kind == MutationKind.DELETE:
            by_id.pop(mid, None)
        else:
            by_id.setdefault(mid, self.message)

    def settle(self, snapshot: Mapping[str, Message], seq: int) -> bool:
        """Return True once this mutation no longer needs re-applying."""
        if self._reflected_in(snapshot):
            return True
        if self.confirmed_after is not None and seq > self.confirmed_after:
            self.lagging_reads += 1
            return self.lagging_reads >= MAX_LAGGING_READS
        return False

    def _reflected_in(self, snapshot: Mapping[str, Message]) -> bool:
        current = snapshot.get(self.message.id)
        if self.kind == MutationKind.READ:
            return current is None or current.is_read
        if self.kind == MutationKind.DELETE:
            return current is None
        return current is not None


def _ordered(messages: Iterable[Message]) -> tuple[Message, ...]:
    return tuple(sorted(messages, key=lambda m: (m.timestamp, m.id), reverse=True))


class InboxSession:
    """Inbox view for one user, kept fresh by user commands and a background timer.

    Use as ``async with InboxSession(...) as inbox:`` to load, start the
    refresh timer, and stop it deterministically on exit.
    """

    def __init__(
        self,
        current_user_id: str,
        store: MessageStore,
        compose: ComposeService,
        *,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        clock: Clock | None = None,
    ) -> None:
        if compose.current_user_id != current_user_id:
            raise ValueError("Compose service belongs to a different user")
        self._user_id = current_user_id
        self._store = store
        self._compose = compose
        self._interval = refresh_interval
        self._clock = clock or SystemClock()

        self._state = InboxState()
        self._pending: list[PendingMutation] = []
        self._refresh_seq = 0
        self._applied_seq = 0
        self._refresh_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task] = set()
        self._subscribers: set[asyncio.Queue[InboxState | None]] = set()
        self._closed = False

    # -- observation ---------------------------------------------------------

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def state(self) -> InboxState:
        return self._state

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_running(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    async def subscribe(self) -> AsyncIterator[InboxState]:
        """Yield the current state, then every new state until the session closes.

        A slow subscriber only ever sees the latest state.
        """
        queue: asyncio.Queue[InboxState | None] = asyncio.Queue(maxsize=1)
        self._subscribers.add(queue)
        try:
            yield self._state
            while not self._closed:
                state = await queue.get()
                if state is None:
                    return
                yield state
        finally:
            self._subscribers.discard(queue)

    # -- lifecycle -----------------------------------------------------------

    async def __aenter__(self) -> Self:
        await self.load()
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    def start(self) -> None:
        if self._closed:
            raise RuntimeError("Inbox session is closed")
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(
                self._refresh_loop(), name=f"inbox-refresh-{self._user_id}",
            )
            logger.debug(
                "Inbox refresh timer started for %s (interval=%.1fs)",
                self._user_id, self._interval,
            )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        tasks = [t for t in (self._refresh_task, *self._background) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._refresh_task = None
        for queue in self._subscribers:
            self._offer(queue, None)
        logger.debug("Inbox session closed for %s", self._user_id)

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.refresh(silent=True)
            except Exception:
                logger.exception("Inbox background refresh loop error")

    # -- loading -------------------------------------------------------------

    async def load(self) -> bool:
        return await self.refresh()

    async def refresh(self, *, silent: bool = False) -> bool:
        """Read the user's messages and merge them into the view.

        A silent refresh never shows the loading state and never surfaces
        errors. Returns True if the read succeeded.
        """
        self._refresh_seq += 1
        seq = self._refresh_seq
        if not silent:
            self._commit(status=InboxStatus.LOADING, error=None)

        try:
            snapshot = await load_user_messages(self._user_id, self._store)
        except Exception as exc:
            if silent:
                logger.warning(
                    "Background inbox refresh failed for %s", self._user_id, exc_info=True,
                )
                return False
            logger.exception("Inbox refresh failed for %s", self._user_id)
            detail = exc.detail if isinstance(exc, AppError) and exc.detail else "Could not load messages"
            self._commit(status=InboxStatus.ERROR, error=detail)
            return False

        self._merge_snapshot(snapshot, seq, silent=silent)
        return True

    def schedule_refresh(self) -> None:
        """Start a silent refresh without waiting for it (e.g. on a push notification)."""
        if self._closed:
            return
        task = asyncio.create_task(self.refresh(silent=True), name=f"inbox-poke-{self._user_id}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _merge_snapshot(self, snapshot: Sequence[Message], seq: int, *, silent: bool) -> None:
        if seq <= self._applied_seq:
            logger.debug("Discarding stale inbox snapshot %d (applied=%d)", seq, self._applied_seq)
            if not silent and self._state.status == InboxStatus.LOADING:
                self._commit(status=InboxStatus.READY)
            return
        self._applied_seq = seq

        by_id = {m.id: m for m in snapshot}
        outstanding: list[PendingMutation] = []
        for pending in self._pending:
            if pending.settle(by_id, seq):
                continue
            pending.apply(by_id)
            outstanding.append(pending)
        self._pending = outstanding

        status, error = self._state.status, self._state.error
        if not silent or status in (InboxStatus.IDLE, InboxStatus.ERROR):
            status, error = InboxStatus.READY, None
        self._commit(messages=_ordered(by_id.values()), status=status, error=error)
        logger.debug(
            "Inbox %s merged snapshot %d: %d message(s), %d pending",
            self._user_id, seq, len(by_id), len(outstanding),
        )

    # -- commands ------------------------------------------------------------

    def set_type_filter(self, message_type: MessageType | None) -> None:
        self._commit(type_filter=message_type)

    def set_search_text(self, text: str) -> None:
        self._commit(search_text=text)

    def clear_error(self) -> None:
        self._commit(error=None)

    async def mark_read(self, message_id: str) -> Message:
        message = self._find(message_id)
        assert_can_mark_read(self._user_id, message)
        if message.is_read:
            return message

        pending = PendingMutation(MutationKind.READ, message, read_at=self._clock.now())
        self._track(pending)
        await self._confirm(
            pending,
            self._store.set_status(message_id, MessageStatus.READ, pending.read_at),
        )
        return message.mark_read(pending.read_at)

    async def mark_all_read(self) -> MarkAllReadResult:
        targets = [
            m for m in self._state.messages
            if m.is_unread_for(self._user_id)
        ]
        return await self._mark_many(targets)

    async def mark_conversation_read(self, key: str) -> MarkAllReadResult:
        conversation = conversation_aggregator.find(self._state.conversations, key)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        targets = [
            m for m in conversation.messages
            if m.is_unread_for(self._user_id)
        ]
        return await self._mark_many(targets)

    async def delete(self, message_id: str) -> None:
        message = self._find(message_id)
        assert_can_delete(self._user_id, message)

        pending = PendingMutation(MutationKind.DELETE, message)
        self._track(pending)
        await self._confirm(pending, self._store.delete(message_id))

    async def send(self, dto: ComposeMessageDTO) -> SendResult:
        return await self._run_send(self._compose.send(dto))

    async def reply(
        self,
        original_id: str,
        content: str,
        *,
        title: str | None = None,
        message_type: MessageType = MessageType.CHAT,
        priority: MessagePriority = MessagePriority.NORMAL,
        attachments: Sequence[Attachment] = (),
    ) -> SendResult:
        return await self._run_send(
            self._compose.reply(
                original_id,
                content,
                title=title,
                message_type=message_type,
                priority=priority,
                attachments=attachments,
            )
        )

    async def send_announcement(
        self,
        title: str,
        content: str,
        recipient_ids: Sequence[str],
        *,
        priority: MessagePriority = MessagePriority.NORMAL,
        require_confirmation: bool = False,
        receiver_types: Sequence[str] = (),
    ) -> SendResult:
        return await self._run_send(
            self._compose.send_announcement(
                title,
                content,
                recipient_ids,
                priority=priority,
                require_confirmation=require_confirmation,
                receiver_types=receiver_types,
            )
        )

    # -- internals -----------------------------------------------------------

    def _find(self, message_id: str) -> Message:
        for message in self._state.messages:
            if message.id == message_id:
                return message
        raise NotFoundError("Message not found")

    async def _mark_many(self, targets: Sequence[Message]) -> MarkAllReadResult:
        marked: list[str] = []
        failed: dict[str, str] = {}
        for message in targets:
            try:
                await self.mark_read(message.id)
            except AppError as exc:
                failed[message.id] = exc.detail or type(exc).__name__
            else:
                marked.append(message.id)

        if failed:
            logger.warning(
                "Marked %d of %d message(s) read for %s; failed: %s",
                len(marked), len(targets), self._user_id, ", ".join(failed),
            )
            self._commit(error=f"Could not mark {len(failed)} message(s) as read")
        return MarkAllReadResult(marked=tuple(marked), failed=failed)

    def _track(self, pending: PendingMutation) -> None:
        self._pending.append(pending)
        by_id = {m.id: m for m in self._state.messages}
        pending.apply(by_id)
        self._commit(messages=_ordered(by_id.values()))

    async def _confirm(self, pending: PendingMutation, write: Awaitable[bool]) -> None:
        try:
            found = await write
        except AppError as exc:
            self._rollback(pending, exc.detail or "Store write failed")
            raise
        except Exception as exc:
            logger.exception("Store write failed for message %s", pending.message_id)
            self._rollback(pending, "Store write failed")
            raise StoreError(str(exc) or "Store write failed") from exc
        if not found:
            self._rollback(pending, "Message not found")
            raise NotFoundError("Message not found")
        pending.confirmed_after = self._refresh_seq

    def _rollback(self, pending: PendingMutation, detail: str) -> None:
        if not any(p is pending for p in self._pending):
            # A snapshot already settled it; the store's view stands.
            self._commit(error=detail)
            return
        self._pending = [p for p in self._pending if p is not pending]

        mid = pending.message_id
        by_id = {m.id: m for m in self._state.messages}
        if pending.kind == MutationKind.READ:
            if mid in by_id:
                by_id[mid] = replace(by_id[mid], status=MessageStatus.UNREAD, read_at=None)
        elif pending.kind == MutationKind.DELETE:
            by_id.setdefault(mid, pending.message)
        for other in self._pending:
            if other.message_id == mid:
                other.apply(by_id)
        self._commit(messages=_ordered(by_id.values()), error=detail)

    async def _run_send(self, send: Awaitable[SendResult]) -> SendResult:
        # Once submitted a send runs to completion even if the caller goes away.
        task = asyncio.ensure_future(send)
        task.add_done_callback(self._on_send_done)
        return await asyncio.shield(task)

    def _on_send_done(self, task: asyncio.Future[SendResult]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("Send from %s failed: %s", self._user_id, exc)
            return
        sent = [m for m in task.result().messages if m.involves(self._user_id)]
        if not sent:
            return
        by_id = {m.id: m for m in self._state.messages}
        for message in sent:
            pending = PendingMutation(
                MutationKind.SENT, message, confirmed_after=self._refresh_seq,
            )
            self._pending.append(pending)
            pending.apply(by_id)
        self._commit(messages=_ordered(by_id.values()))

    def _commit(self, **changes: object) -> InboxState:
        state = replace(self._state, **changes)
        conversations = conversation_aggregator.group(state.messages, self._user_id)
        state = replace(
            state,
            conversations=tuple(conversations),
            filtered_messages=tuple(
                inbox_filter.apply_filters(state.messages, state.type_filter, state.search_text)
            ),
            unread_count=conversation_aggregator.total_unread(conversations),
        )
        self._state = state
        for queue in self._subscribers:
            self._offer(queue, state)
        return state

    @staticmethod
    def _offer(queue: asyncio.Queue[InboxState | None], item: InboxState | None) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(item)
