from __future__ import annotations

import pytest

from comms_service.application.exceptions import ConflictError, ForbiddenError, NotFoundError, StoreError
from comms_service.domain.value_objects.enums import MessageStatus, MessageType
from comms_service.services import message_service
from tests.conftest import FakeMessageStore, at, make_message


@pytest.fixture
def store() -> FakeMessageStore:
    return FakeMessageStore()


@pytest.mark.asyncio
async def test_load_user_messages_includes_sent_and_received(store):
    received = make_message(sender_id="teacher-1", receiver_id="parent-1", timestamp=at(1))
    sent = make_message(sender_id="parent-1", receiver_id="teacher-1", timestamp=at(2))
    unrelated = make_message(sender_id="teacher-1", receiver_id="parent-2", timestamp=at(3))
    store.add(received, sent, unrelated)

    messages = await message_service.load_user_messages("parent-1", store)

    assert messages == [sent, received]


@pytest.mark.asyncio
async def test_get_message_checks_participation(store):
    message = make_message(sender_id="teacher-1", receiver_id="parent-1")
    store.add(message)

    assert await message_service.get_message(message.id, "parent-1", store) == message
    with pytest.raises(ForbiddenError):
        await message_service.get_message(message.id, "parent-2", store)
    with pytest.raises(NotFoundError):
        await message_service.get_message("missing", "parent-1", store)


@pytest.mark.asyncio
async def test_mark_read_by_recipient(store):
    message = make_message(receiver_id="parent-1")
    store.add(message)

    read = await message_service.mark_read(message.id, "parent-1", store, now=at(60))

    assert read.status == MessageStatus.READ
    assert read.read_at == at(60)
    assert store.get(message.id).is_read


@pytest.mark.asyncio
async def test_mark_read_is_idempotent(store):
    message = make_message(receiver_id="parent-1", status=MessageStatus.READ)
    store.add(message)

    assert await message_service.mark_read(message.id, "parent-1", store) == message


@pytest.mark.asyncio
async def test_sender_cannot_mark_read(store):
    message = make_message(sender_id="teacher-1", receiver_id="parent-1")
    store.add(message)

    with pytest.raises(ForbiddenError):
        await message_service.mark_read(message.id, "teacher-1", store)
    assert not store.get(message.id).is_read


@pytest.mark.asyncio
async def test_recipient_can_delete_their_copy(store):
    message = make_message(receiver_id="parent-1", status=MessageStatus.READ)
    store.add(message)

    await message_service.delete_message(message.id, "parent-1", store)

    assert store.get(message.id) is None


@pytest.mark.asyncio
async def test_sender_can_retract_only_unread(store):
    unread = make_message(sender_id="teacher-1", receiver_id="parent-1")
    read = make_message(sender_id="teacher-1", receiver_id="parent-1", status=MessageStatus.READ)
    store.add(unread, read)

    await message_service.delete_message(unread.id, "teacher-1", store)
    with pytest.raises(ForbiddenError):
        await message_service.delete_message(read.id, "teacher-1", store)

    assert store.get(unread.id) is None
    assert store.get(read.id) is not None


@pytest.mark.asyncio
async def test_quoted_original(store):
    original = make_message(sender_id="parent-1", receiver_id="teacher-1", title="Homework")
    reply = make_message(
        sender_id="teacher-1", receiver_id="parent-1", title="RE: Homework", reply_to_id=original.id,
    )
    store.add(original, reply)

    assert await message_service.get_quoted_original(reply.id, "parent-1", store) == original
    with pytest.raises(NotFoundError):
        await message_service.get_quoted_original(original.id, "parent-1", store)


@pytest.mark.asyncio
async def test_list_inbox_filters_and_counts(store):
    store.add(
        make_message(type=MessageType.INCIDENT, title="Fall", timestamp=at(1)),
        make_message(type=MessageType.CHAT, title="Hi", timestamp=at(2)),
        make_message(type=MessageType.CHAT, title="Read", status=MessageStatus.READ, timestamp=at(3)),
    )

    incidents = await message_service.list_inbox("parent-1", store, message_type=MessageType.INCIDENT)

    assert [m.title for m in incidents] == ["Fall"]
    assert await message_service.unread_count("parent-1", store) == 2


@pytest.mark.asyncio
async def test_mark_all_read_collects_failures(store):
    messages = [make_message(receiver_id="parent-1", timestamp=at(i)) for i in range(3)]
    store.add(*messages)
    store.fail_status_for = {messages[1].id}

    result = await message_service.mark_all_read("parent-1", store)

    assert set(result.marked) == {messages[0].id, messages[2].id}
    assert list(result.failed) == [messages[1].id]
    assert not store.get(messages[1].id).is_read


@pytest.mark.asyncio
async def test_get_conversation_by_key(store):
    store.add(
        make_message(sender_id="teacher-1", receiver_id="parent-1", context_id="incident-1", timestamp=at(1)),
        make_message(sender_id="teacher-1", receiver_id="parent-1", timestamp=at(2)),
    )

    conv = await message_service.get_conversation("teacher-1:incident-1", "parent-1", store)

    assert conv.context_id == "incident-1"
    with pytest.raises(NotFoundError):
        await message_service.get_conversation("nobody", "parent-1", store)


@pytest.mark.asyncio
async def test_list_thread_only_shows_own_messages(store):
    mine = make_message(receiver_id="parent-1", conversation_id="t1", timestamp=at(2))
    theirs = make_message(receiver_id="parent-2", conversation_id="t1", timestamp=at(1))
    store.add(mine, theirs)

    assert await message_service.list_thread("t1", "parent-1", store) == [mine]
    with pytest.raises(NotFoundError):
        await message_service.list_thread("t1", "parent-3", store)


@pytest.mark.asyncio
async def test_store_outage_propagates(store):
    store.fail_reads = True

    with pytest.raises(StoreError):
        await message_service.list_conversations("parent-1", store)


@pytest.mark.asyncio
async def test_quoted_original_must_be_visible_to_reader(store):
    private = make_message(sender_id="parent-2", receiver_id="teacher-9", title="private")
    # A record quoting a message its participants never saw (e.g. written by an older client).
    quoting = make_message(sender_id="parent-1", receiver_id="teacher-1", reply_to_id=private.id)
    store.add(private, quoting)

    with pytest.raises(ForbiddenError):
        await message_service.get_quoted_original(quoting.id, "parent-1", store)


@pytest.mark.asyncio
async def test_group_record_read_state_is_not_per_recipient(store):
    group = make_message(sender_id="teacher-1", receiver_id="", receiver_ids=("parent-1", "parent-2"))
    direct = make_message(sender_id="teacher-1", receiver_id="parent-1")
    store.add(group, direct)

    with pytest.raises(ConflictError):
        await message_service.mark_read(group.id, "parent-1", store)

    assert await message_service.unread_count("parent-1", store) == 1
    result = await message_service.mark_all_read("parent-1", store)

    assert result.marked == (direct.id,)
    assert store.get(group.id).status == MessageStatus.UNREAD
