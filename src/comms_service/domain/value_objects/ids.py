from __future__ import annotations

import uuid
from typing import NewType

MessageId = NewType("MessageId", str)
UserId = NewType("UserId", str)
ConversationKey = NewType("ConversationKey", str)


def new_message_id() -> MessageId:
    return MessageId(uuid.uuid4().hex)
