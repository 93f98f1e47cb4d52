from __future__ import annotations

import pytest

from comms_service.application.dto.message import ComposeMessageDTO
from comms_service.application.exceptions import ForbiddenError, NotFoundError, ValidationError
from comms_service.domain.value_objects.enums import MessagePriority, MessageStatus, MessageType
from comms_service.services.compose_service import ComposeService, reply_title
from tests.conftest import (
    FakeMessageStore,
    FakeNotifier,
    FakeUserDirectory,
    FixedClock,
    make_message,
)


@pytest.fixture
def store() -> FakeMessageStore:
    return FakeMessageStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def compose(store, notifier, clock) -> ComposeService:
    return ComposeService("teacher-1", store, notifier, FakeUserDirectory(), clock=clock)


@pytest.mark.asyncio
async def test_send_fans_out_one_record_per_recipient(compose, store, notifier):
    result = await compose.send(
        ComposeMessageDTO(title="Meeting", content="3pm", recipient_ids=("A", "B", "C")),
    )

    assert result.all_succeeded
    assert len(store.messages) == 3
    assert {m.receiver_id for m in store.messages} == {"A", "B", "C"}
    for m in store.messages:
        assert m.receiver_ids == ()
        assert m.status == MessageStatus.UNREAD
        assert m.sender_id == "teacher-1"
        assert m.sender_name == "Ms. Rivera"
    assert len({m.id for m in store.messages}) == 3
    assert [n[0] for n in notifier.sent] == ["A", "B", "C"]


@pytest.mark.asyncio
async def test_duplicate_recipients_get_one_copy(compose, store):
    result = await compose.send(
        ComposeMessageDTO(title="Hi", content="x", recipient_ids=("A", "A", " B ", "")),
    )

    assert [o.recipient_id for o in result.outcomes] == ["A", "B"]
    assert len(store.messages) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("title", "content", "recipients"),
    [
        ("", "body", ("A",)),
        ("   ", "body", ("A",)),
        ("Title", "", ("A",)),
        ("Title", "\n\t", ("A",)),
        ("Title", "body", ()),
    ],
)
async def test_invalid_send_writes_nothing(compose, store, notifier, title, content, recipients):
    with pytest.raises(ValidationError):
        await compose.send(ComposeMessageDTO(title=title, content=content, recipient_ids=recipients))

    assert store.put_calls == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_partial_failure_reports_failed_recipients(compose, store, notifier):
    store.fail_put_for = {"B"}

    result = await compose.send(
        ComposeMessageDTO(title="Meeting", content="3pm", recipient_ids=("A", "B", "C")),
    )

    assert result.partial
    assert not result.all_succeeded
    assert result.failed_recipients == ["B"]
    assert sorted(m.receiver_id for m in result.messages) == ["A", "C"]
    assert sorted(m.receiver_id for m in store.messages) == ["A", "C"]
    # No notification for a copy that was never stored.
    assert [n[0] for n in notifier.sent] == ["A", "C"]


@pytest.mark.asyncio
async def test_notifier_failure_does_not_fail_send(compose, store, notifier):
    notifier.fail = True

    result = await compose.send(ComposeMessageDTO(title="Hi", content="x", recipient_ids=("A",)))

    assert result.all_succeeded
    assert len(store.messages) == 1


@pytest.mark.asyncio
async def test_notification_preview_is_truncated(store, notifier):
    compose = ComposeService("teacher-1", store, notifier, FakeUserDirectory(), preview_chars=10)

    await compose.send(ComposeMessageDTO(title="Hi", content="a" * 50, recipient_ids=("A",)))

    _, title, preview = notifier.sent[0]
    assert title == "Hi"
    assert len(preview) == 10
    assert preview.endswith("…")


@pytest.mark.asyncio
async def test_send_timestamps_strictly_increase_for_a_sender(compose, store, clock):
    first = await compose.send(ComposeMessageDTO(title="1", content="x", recipient_ids=("A",)))
    second = await compose.send(ComposeMessageDTO(title="2", content="x", recipient_ids=("A",)))

    assert second.messages[0].timestamp > first.messages[0].timestamp


@pytest.mark.asyncio
async def test_reply_prefixes_title_once(compose, store):
    original = make_message(sender_id="parent-1", receiver_id="teacher-1", title="Homework")
    store.add(original)

    first = await compose.reply(original.id, "Thanks")
    reply = first.messages[0]
    assert reply.title == "RE: Homework"
    assert reply.receiver_id == "parent-1"
    assert reply.reply_to_id == original.id

    second = await compose.reply(reply.id, "Again")
    assert second.messages[0].title == "RE: Homework"
    # Replying to our own message goes back to its recipient.
    assert second.messages[0].receiver_id == "parent-1"


def test_reply_title_is_idempotent():
    assert reply_title("Homework") == "RE: Homework"
    assert reply_title("RE: Homework") == "RE: Homework"
    assert reply_title("re: Homework") == "re: Homework"


@pytest.mark.asyncio
async def test_reply_keeps_context(compose, store):
    original = make_message(
        sender_id="parent-1", receiver_id="teacher-1", context_id="incident-3", conversation_id="thread-1",
    )
    store.add(original)

    result = await compose.reply(original.id, "On it")

    reply = result.messages[0]
    assert reply.context_id == "incident-3"
    assert reply.conversation_id == "thread-1"


@pytest.mark.asyncio
async def test_reply_to_unknown_message(compose):
    with pytest.raises(NotFoundError):
        await compose.reply("missing", "hello")


@pytest.mark.asyncio
async def test_reply_to_someone_elses_message(compose, store):
    original = make_message(sender_id="parent-1", receiver_id="parent-2")
    store.add(original)

    with pytest.raises(ForbiddenError):
        await compose.reply(original.id, "hello")
    assert store.put_calls == []


@pytest.mark.asyncio
async def test_send_with_only_reply_to_infers_recipient(compose, store):
    original = make_message(sender_id="parent-2", receiver_id="teacher-1")
    store.add(original)

    result = await compose.send(ComposeMessageDTO(title="Re", content="x", reply_to_id=original.id))

    assert result.messages[0].receiver_id == "parent-2"


@pytest.mark.asyncio
async def test_send_announcement_sets_metadata(compose, store):
    result = await compose.send_announcement(
        "Closed Friday",
        "Staff training day",
        ["parent-1", "parent-2"],
        priority=MessagePriority.URGENT,
        require_confirmation=True,
        receiver_types=["parent", "guardian"],
    )

    assert len(result.messages) == 2
    for m in result.messages:
        assert m.type == MessageType.ANNOUNCEMENT
        assert m.is_urgent
        assert m.requires_confirmation
        assert m.metadata["receiverTypes"] == "parent,guardian"


@pytest.mark.asyncio
async def test_send_quoting_someone_elses_message_writes_nothing(compose, store):
    private = make_message(sender_id="parent-2", receiver_id="teacher-9", title="private")
    store.add(private)

    with pytest.raises(ForbiddenError):
        await compose.send(
            ComposeMessageDTO(title="Hi", content="x", recipient_ids=("A",), reply_to_id=private.id),
        )
    assert store.put_calls == []


@pytest.mark.asyncio
async def test_send_quoting_missing_message_writes_nothing(compose, store):
    with pytest.raises(NotFoundError):
        await compose.send(
            ComposeMessageDTO(title="Hi", content="x", recipient_ids=("A",), reply_to_id="does-not-exist"),
        )
    assert store.put_calls == []
