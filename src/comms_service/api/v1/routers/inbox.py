from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Query

from comms_service.api.deps import CurrentPrincipal, StoreDep
from comms_service.api.v1.schemas.inbox import (
    ConversationDetailResponse,
    ConversationResponse,
    InboxResponse,
    MarkAllReadResponse,
)
from comms_service.api.v1.schemas.message import MessageResponse, MessageTypeResponse
from comms_service.domain.value_objects.display import display_for
from comms_service.domain.value_objects.enums import MessageType
from comms_service.services import message_service

router = APIRouter(prefix="/api/v1", tags=["inbox"])


@router.get("/inbox", response_model=InboxResponse)
async def get_inbox(
    principal: CurrentPrincipal,
    store: StoreDep,
    message_type: MessageType | None = Query(None, alias="type"),
    q: str = Query(""),
) -> InboxResponse:
    messages = await message_service.list_inbox(
        principal.subject_id, store, message_type=message_type, search_text=q,
    )
    unread = await message_service.unread_count(principal.subject_id, store)
    return InboxResponse(
        messages=[MessageResponse.model_validate(m) for m in messages],
        unread_count=unread,
    )


@router.post("/inbox/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    principal: CurrentPrincipal,
    store: StoreDep,
) -> MarkAllReadResponse:
    result = await message_service.mark_all_read(principal.subject_id, store)
    return MarkAllReadResponse.from_result(result)


@router.get("/conversations", response_model=list[ConversationResponse])
async def list_conversations(
    principal: CurrentPrincipal,
    store: StoreDep,
    q: str = Query(""),
) -> list[ConversationResponse]:
    conversations = await message_service.list_conversations(
        principal.subject_id, store, search_text=q,
    )
    return [ConversationResponse.from_entity(c) for c in conversations]


@router.get("/conversations/{key}", response_model=ConversationDetailResponse)
async def get_conversation(
    key: str,
    principal: CurrentPrincipal,
    store: StoreDep,
) -> ConversationDetailResponse:
    conversation = await message_service.get_conversation(key, principal.subject_id, store)
    return ConversationDetailResponse.from_entity(conversation)


@router.get("/threads/{conversation_id}", response_model=list[MessageResponse])
async def get_thread(
    conversation_id: str,
    principal: CurrentPrincipal,
    store: StoreDep,
) -> list[MessageResponse]:
    messages = await message_service.list_thread(conversation_id, principal.subject_id, store)
    return [MessageResponse.model_validate(m) for m in messages]


@router.get("/message-types", response_model=list[MessageTypeResponse])
async def list_message_types() -> list[MessageTypeResponse]:
    return [
        MessageTypeResponse(type=t, **asdict(display_for(t)))
        for t in MessageType
    ]
