from __future__ import annotations

from comms_service.domain.entities.message import Attachment, Message
from comms_service.domain.value_objects.enums import (
    MessagePriority,
    MessageStatus,
    MessageType,
)
from comms_service.infrastructure.db.models.message import MessageModel


def _enum_or_default(enum_cls, raw, default):
    # Unknown values from older writers fall back instead of failing the whole read.
    try:
        return enum_cls(raw)
    except ValueError:
        return default


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        type=_enum_or_default(MessageType, model.type, MessageType.CHAT),
        priority=_enum_or_default(MessagePriority, model.priority, MessagePriority.NORMAL),
        title=model.title,
        content=model.content,
        sender_id=model.sender_id,
        sender_name=model.sender_name,
        receiver_id=model.receiver_id,
        receiver_ids=tuple(model.receiver_ids or ()),
        timestamp=model.timestamp,
        status=_enum_or_default(MessageStatus, model.status, MessageStatus.UNREAD),
        read_at=model.read_at,
        conversation_id=model.conversation_id,
        reply_to_id=model.reply_to_id,
        context_id=model.context_id,
        context_type=model.context_type,
        attachments=tuple(
            Attachment(name=a.get("name", ""), url=a.get("url", ""), type=a.get("type", ""))
            for a in (model.attachments or ())
        ),
        metadata=dict(model.extra or {}),
    )


def entity_to_model(entity: Message) -> MessageModel:
    return MessageModel(
        id=entity.id,
        type=entity.type.value,
        priority=entity.priority.value,
        title=entity.title,
        content=entity.content,
        sender_id=entity.sender_id,
        sender_name=entity.sender_name,
        receiver_id=entity.receiver_id,
        receiver_ids=list(entity.receiver_ids),
        timestamp=entity.timestamp,
        status=entity.status.value,
        read_at=entity.read_at,
        conversation_id=entity.conversation_id,
        reply_to_id=entity.reply_to_id,
        context_id=entity.context_id,
        context_type=entity.context_type,
        attachments=[{"name": a.name, "url": a.url, "type": a.type} for a in entity.attachments],
        extra=dict(entity.metadata),
    )
