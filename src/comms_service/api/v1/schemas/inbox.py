from __future__ import annotations

from pydantic import BaseModel

from comms_service.api.v1.schemas.message import MessageResponse
from comms_service.application.dto.message import MarkAllReadResult
from comms_service.domain.entities.conversation import Conversation
from comms_service.domain.value_objects.enums import InboxStatus, MessageType
from comms_service.services.inbox_service import InboxState


class InboxResponse(BaseModel):
    messages: list[MessageResponse]
    unread_count: int


class ConversationResponse(BaseModel):
    key: str
    other_participant_id: str
    context_id: str | None
    unread_count: int
    message_count: int
    last_message: MessageResponse

    @classmethod
    def from_entity(cls, conversation: Conversation) -> ConversationResponse:
        return cls(
            key=conversation.key,
            other_participant_id=conversation.other_participant_id,
            context_id=conversation.context_id,
            unread_count=conversation.unread_count,
            message_count=len(conversation.messages),
            last_message=MessageResponse.model_validate(conversation.last_message),
        )


class ConversationDetailResponse(ConversationResponse):
    messages: list[MessageResponse]

    @classmethod
    def from_entity(cls, conversation: Conversation) -> ConversationDetailResponse:
        summary = ConversationResponse.from_entity(conversation)
        return cls(
            **summary.model_dump(exclude={"last_message"}),
            last_message=summary.last_message,
            messages=[MessageResponse.model_validate(m) for m in conversation.messages],
        )


class MarkAllReadResponse(BaseModel):
    marked: list[str]
    failed: dict[str, str]

    @classmethod
    def from_result(cls, result: MarkAllReadResult) -> MarkAllReadResponse:
        return cls(marked=list(result.marked), failed=dict(result.failed))


class InboxStateResponse(BaseModel):
    status: InboxStatus
    type_filter: MessageType | None
    search_text: str
    unread_count: int
    error: str | None
    conversations: list[ConversationResponse]
    filtered_messages: list[MessageResponse]

    @classmethod
    def from_state(cls, state: InboxState) -> InboxStateResponse:
        return cls(
            status=state.status,
            type_filter=state.type_filter,
            search_text=state.search_text,
            unread_count=state.unread_count,
            error=state.error,
            conversations=[ConversationResponse.from_entity(c) for c in state.conversations],
            filtered_messages=[MessageResponse.model_validate(m) for m in state.filtered_messages],
        )
