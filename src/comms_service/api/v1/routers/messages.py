from __future__ import annotations

from fastapi import APIRouter, Response, status

from comms_service.api.deps import ComposeDep, CurrentPrincipal, StoreDep
from comms_service.api.v1.schemas.message import (
    AnnouncementRequest,
    MessageResponse,
    ReplyRequest,
    SendMessageRequest,
    SendResultResponse,
)
from comms_service.application.dto.message import SendResult
from comms_service.services import message_service

router = APIRouter(prefix="/api/v1/messages", tags=["messages"])


def _send_status(result: SendResult) -> int:
    if result.all_succeeded:
        return status.HTTP_201_CREATED
    if result.messages:
        return status.HTTP_207_MULTI_STATUS
    return status.HTTP_502_BAD_GATEWAY


@router.post("", response_model=SendResultResponse, status_code=201)
async def send_message(
    body: SendMessageRequest,
    compose: ComposeDep,
    response: Response,
) -> SendResultResponse:
    result = await compose.send(body.to_dto())
    response.status_code = _send_status(result)
    return SendResultResponse.from_result(result)


@router.post("/announcements", response_model=SendResultResponse, status_code=201)
async def send_announcement(
    body: AnnouncementRequest,
    compose: ComposeDep,
    response: Response,
) -> SendResultResponse:
    result = await compose.send_announcement(
        body.title,
        body.content,
        body.recipient_ids,
        priority=body.priority,
        require_confirmation=body.require_confirmation,
        receiver_types=body.receiver_types,
    )
    response.status_code = _send_status(result)
    return SendResultResponse.from_result(result)


@router.post("/{message_id}/reply", response_model=SendResultResponse, status_code=201)
async def reply_to_message(
    message_id: str,
    body: ReplyRequest,
    compose: ComposeDep,
    response: Response,
) -> SendResultResponse:
    result = await compose.reply(
        message_id,
        body.content,
        title=body.title,
        message_type=body.type,
        priority=body.priority,
        attachments=[a.to_entity() for a in body.attachments],
    )
    response.status_code = _send_status(result)
    return SendResultResponse.from_result(result)


@router.get("/{message_id}", response_model=MessageResponse)
async def get_message(
    message_id: str,
    principal: CurrentPrincipal,
    store: StoreDep,
) -> MessageResponse:
    message = await message_service.get_message(message_id, principal.subject_id, store)
    return MessageResponse.model_validate(message)


@router.get("/{message_id}/quoted", response_model=MessageResponse)
async def get_quoted_original(
    message_id: str,
    principal: CurrentPrincipal,
    store: StoreDep,
) -> MessageResponse:
    original = await message_service.get_quoted_original(message_id, principal.subject_id, store)
    return MessageResponse.model_validate(original)


@router.post("/{message_id}/read", response_model=MessageResponse)
async def mark_read(
    message_id: str,
    principal: CurrentPrincipal,
    store: StoreDep,
) -> MessageResponse:
    message = await message_service.mark_read(message_id, principal.subject_id, store)
    return MessageResponse.model_validate(message)


@router.delete("/{message_id}", status_code=204)
async def delete_message(
    message_id: str,
    principal: CurrentPrincipal,
    store: StoreDep,
) -> Response:
    await message_service.delete_message(message_id, principal.subject_id, store)
    return Response(status_code=204)
