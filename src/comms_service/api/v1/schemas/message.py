from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from comms_service.application.dto.message import ComposeMessageDTO, SendResult
from comms_service.domain.entities.message import Attachment
from comms_service.domain.value_objects.enums import (
    MessagePriority,
    MessageStatus,
    MessageType,
)


class AttachmentSchema(BaseModel):
    name: str
    url: str
    type: str = ""

    model_config = {"from_attributes": True}

    def to_entity(self) -> Attachment:
        return Attachment(name=self.name, url=self.url, type=self.type)


class SendMessageRequest(BaseModel):
    title: str
    content: str
    recipient_ids: list[str] = Field(default_factory=list)
    type: MessageType = MessageType.CHAT
    priority: MessagePriority = MessagePriority.NORMAL
    attachments: list[AttachmentSchema] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)
    conversation_id: str | None = None
    reply_to_id: str | None = None
    context_id: str | None = None
    context_type: str | None = None

    def to_dto(self) -> ComposeMessageDTO:
        return ComposeMessageDTO(
            title=self.title,
            content=self.content,
            recipient_ids=tuple(self.recipient_ids),
            type=self.type,
            priority=self.priority,
            attachments=tuple(a.to_entity() for a in self.attachments),
            metadata=dict(self.metadata),
            conversation_id=self.conversation_id,
            reply_to_id=self.reply_to_id,
            context_id=self.context_id,
            context_type=self.context_type,
        )


class ReplyRequest(BaseModel):
    content: str
    title: str | None = None
    type: MessageType = MessageType.CHAT
    priority: MessagePriority = MessagePriority.NORMAL
    attachments: list[AttachmentSchema] = Field(default_factory=list)


class AnnouncementRequest(BaseModel):
    title: str
    content: str
    recipient_ids: list[str]
    priority: MessagePriority = MessagePriority.NORMAL
    require_confirmation: bool = False
    receiver_types: list[str] = Field(default_factory=list)


class MessageResponse(BaseModel):
    id: str
    type: MessageType
    priority: MessagePriority
    title: str
    content: str
    sender_id: str
    sender_name: str
    receiver_id: str
    receiver_ids: list[str]
    timestamp: datetime
    status: MessageStatus
    read_at: datetime | None
    conversation_id: str | None
    reply_to_id: str | None
    context_id: str | None
    context_type: str | None
    attachments: list[AttachmentSchema]
    metadata: dict[str, str]

    model_config = {"from_attributes": True}


class RecipientOutcomeResponse(BaseModel):
    recipient_id: str
    ok: bool
    message_id: str | None = None
    error: str | None = None


class SendResultResponse(BaseModel):
    outcomes: list[RecipientOutcomeResponse]
    messages: list[MessageResponse]
    failed_recipients: list[str]

    @classmethod
    def from_result(cls, result: SendResult) -> SendResultResponse:
        return cls(
            outcomes=[
                RecipientOutcomeResponse(
                    recipient_id=o.recipient_id,
                    ok=o.ok,
                    message_id=o.message.id if o.message else None,
                    error=o.error,
                )
                for o in result.outcomes
            ],
            messages=[MessageResponse.model_validate(m) for m in result.messages],
            failed_recipients=result.failed_recipients,
        )


class MessageTypeResponse(BaseModel):
    type: MessageType
    icon: str
    color: str
    label: str
