from __future__ import annotations

from comms_service.domain.value_objects.enums import MessageType
from comms_service.services import conversation_aggregator, inbox_filter
from tests.conftest import at, make_message


def _ten_message_inbox():
    messages = [
        make_message(type=MessageType.ANNOUNCEMENT, title="Term dates", content="The exam is in June", timestamp=at(1)),
        make_message(type=MessageType.ANNOUNCEMENT, title="Trip", content="Zoo on Friday", timestamp=at(2)),
        make_message(type=MessageType.CHAT, title="Question", content="About the exam", timestamp=at(3)),
    ]
    for i in range(7):
        messages.append(make_message(type=MessageType.DAILY_RECORD, title=f"Day {i}", timestamp=at(10 + i)))
    return messages


def test_type_and_search_filters_combine():
    messages = _ten_message_inbox()
    assert len(messages) == 10

    result = inbox_filter.apply_filters(messages, MessageType.ANNOUNCEMENT, "exam")

    assert len(result) == 1
    assert result[0].title == "Term dates"


def test_filters_commute():
    messages = _ten_message_inbox()

    by_type_first = inbox_filter.apply_filters(
        inbox_filter.apply_filters(messages, MessageType.ANNOUNCEMENT), None, "exam",
    )
    by_text_first = inbox_filter.apply_filters(
        inbox_filter.apply_filters(messages, None, "exam"), MessageType.ANNOUNCEMENT,
    )

    assert by_type_first == by_text_first


def test_no_filter_keeps_everything_in_order():
    messages = _ten_message_inbox()

    assert inbox_filter.apply_filters(messages) == messages
    assert inbox_filter.apply_filters(messages, None, "   ") == messages


def test_search_is_case_insensitive_and_covers_sender_name():
    message = make_message(sender_name="Ms. Rivera", title="Note", content="See you")

    assert inbox_filter.matches_search(message, "RIVERA")
    assert inbox_filter.matches_search(message, "note")
    assert not inbox_filter.matches_search(message, "homework")


def test_filter_conversations_by_participant_or_content():
    messages = [
        make_message(sender_id="parent-7", receiver_id="me", content="Lunch money", timestamp=at(1)),
        make_message(sender_id="parent-8", receiver_id="me", content="Homework", timestamp=at(2)),
    ]
    conversations = conversation_aggregator.group(messages, "me")

    assert [c.key for c in inbox_filter.filter_conversations(conversations, "parent-7")] == ["parent-7"]
    assert [c.key for c in inbox_filter.filter_conversations(conversations, "homework")] == ["parent-8"]
    assert inbox_filter.filter_conversations(conversations, "") == conversations
