"""Seed development data: a teacher, two parents and a handful of messages."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from comms_service.domain.entities.message import Message
from comms_service.domain.value_objects.enums import (
    MessagePriority,
    MessageStatus,
    MessageType,
)
from comms_service.domain.value_objects.ids import new_message_id
from comms_service.infrastructure.db.models.user import UserModel
from comms_service.infrastructure.db.repositories.message import SqlMessageStore
from comms_service.infrastructure.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)

USERS = {
    "teacher-1": "Ms. Rivera",
    "parent-1": "Sam Okafor",
    "parent-2": "Lee Chen",
}


async def seed() -> None:
    async with AsyncSessionLocal() as session:
        for user_id, name in USERS.items():
            await session.merge(UserModel(id=user_id, display_name=name))
        await session.commit()

    store = SqlMessageStore(AsyncSessionLocal)
    now = datetime.now(timezone.utc)

    messages_data = [
        # (type, priority, sender, receiver, title, content, context_id, status)
        (MessageType.CHAT, MessagePriority.NORMAL, "parent-1", "teacher-1",
         "Pickup today", "My mother will pick Ada up at 3pm.", None, MessageStatus.READ),
        (MessageType.CHAT, MessagePriority.NORMAL, "teacher-1", "parent-1",
         "RE: Pickup today", "Thanks, noted.", None, MessageStatus.UNREAD),
        (MessageType.INCIDENT, MessagePriority.HIGH, "teacher-1", "parent-1",
         "Minor fall at recess", "Ada scraped her knee; we cleaned and bandaged it.",
         "incident-17", MessageStatus.UNREAD),
        (MessageType.CHAT, MessagePriority.NORMAL, "parent-2", "teacher-1",
         "Lunch allergy", "Please remember Max cannot have peanuts.", None, MessageStatus.UNREAD),
    ]
    for offset, (mtype, priority, sender, receiver, title, content, context_id, status) in enumerate(messages_data):
        timestamp = now - timedelta(minutes=10 * (len(messages_data) - offset))
        await store.put(
            Message(
                id=new_message_id(),
                type=mtype,
                priority=priority,
                title=title,
                content=content,
                sender_id=sender,
                sender_name=USERS[sender],
                receiver_id=receiver,
                timestamp=timestamp,
                status=status,
                read_at=timestamp if status == MessageStatus.READ else None,
                context_id=context_id,
                context_type="incident" if context_id else None,
            )
        )

    for parent in ("parent-1", "parent-2"):
        await store.put(
            Message(
                id=new_message_id(),
                type=MessageType.ANNOUNCEMENT,
                priority=MessagePriority.URGENT,
                title="School closed Friday",
                content="The school is closed on Friday for a staff training day.",
                sender_id="teacher-1",
                sender_name=USERS["teacher-1"],
                receiver_id=parent,
                timestamp=now,
                metadata={"requireConfirmation": "true", "receiverTypes": "parent"},
            )
        )

    logger.info("Seeded %d users and %d messages", len(USERS), len(messages_data) + 2)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
