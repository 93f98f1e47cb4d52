from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from comms_service.api.deps import (
    NotifierDep,
    StoreDep,
    UserDirectoryDep,
    build_compose_service,
    get_verifier,
)
from comms_service.api.middleware.correlation_id import correlation_id_ctx
from comms_service.api.v1.schemas.inbox import InboxStateResponse, MarkAllReadResponse
from comms_service.api.v1.schemas.message import (
    AnnouncementRequest,
    MessageResponse,
    ReplyRequest,
    SendMessageRequest,
    SendResultResponse,
)
from comms_service.application.dto.principal import Principal
from comms_service.application.exceptions import AppError
from comms_service.config import settings
from comms_service.domain.value_objects.enums import MessageType
from comms_service.infrastructure.ws.manager import ConnectionManager
from comms_service.infrastructure.ws.protocol import WsInbound, WsOutbound
from comms_service.services.inbox_service import InboxSession

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

manager = ConnectionManager()


def get_manager() -> ConnectionManager:
    return manager


async def _authenticate(token: str) -> Principal | None:
    try:
        verifier = get_verifier()
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws/inbox")
async def ws_inbox(
    websocket: WebSocket,
    store: StoreDep,
    notifier: NotifierDep,
    users: UserDirectoryDep,
    token: str = Query(...),
) -> None:
    principal = await _authenticate(token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    user_id = principal.subject_id
    correlation_id_ctx.set(uuid.uuid4().hex)
    await websocket.accept()

    compose = build_compose_service(principal, store, notifier, users)
    session = InboxSession(
        user_id, store, compose, refresh_interval=settings.INBOX_REFRESH_INTERVAL,
    )
    async with session:
        manager.register(websocket, session)
        forwarder = asyncio.create_task(
            _forward_state(websocket, session), name=f"ws-state-{user_id}",
        )
        heartbeat_task = asyncio.create_task(
            _heartbeat(websocket), name=f"ws-heartbeat-{user_id}",
        )
        try:
            await _read_loop(websocket, session)
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception("WS error for %s", user_id)
        finally:
            for task in (heartbeat_task, forwarder):
                task.cancel()
            await asyncio.gather(heartbeat_task, forwarder, return_exceptions=True)
            manager.unregister(websocket, user_id)


async def _send(ws: WebSocket, type_: str, data: dict[str, Any], request_id: str | None = None) -> None:
    await ws.send_text(
        WsOutbound(type=type_, request_id=request_id, data=data).model_dump_json()
    )


async def _forward_state(ws: WebSocket, session: InboxSession) -> None:
    async for state in session.subscribe():
        await _send(ws, "state", InboxStateResponse.from_state(state).model_dump(mode="json"))


async def _heartbeat(ws: WebSocket) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await _send(ws, "pong", {})
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("WS heartbeat stopped", exc_info=True)


async def _read_loop(ws: WebSocket, session: InboxSession) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except ValueError:
            await _send(ws, "error", {"code": "invalid_payload"})
            continue

        if msg.type == "ping":
            await _send(ws, "pong", {}, msg.request_id)
            continue

        try:
            result = await _handle(session, msg)
        except AppError as exc:
            await _send(
                ws,
                "error",
                {"code": type(exc).__name__, "detail": exc.detail},
                msg.request_id,
            )
        except (KeyError, ValueError) as exc:
            await _send(
                ws, "error", {"code": "invalid_data", "detail": str(exc)}, msg.request_id,
            )
        else:
            await _send(ws, "result", result, msg.request_id)


async def _handle(session: InboxSession, msg: WsInbound) -> dict[str, Any]:
    data = msg.data

    if msg.type == "send":
        body = SendMessageRequest.model_validate(data)
        result = await session.send(body.to_dto())
        return SendResultResponse.from_result(result).model_dump(mode="json")

    if msg.type == "reply":
        body = ReplyRequest.model_validate(data)
        result = await session.reply(
            data["message_id"],
            body.content,
            title=body.title,
            message_type=body.type,
            priority=body.priority,
            attachments=[a.to_entity() for a in body.attachments],
        )
        return SendResultResponse.from_result(result).model_dump(mode="json")

    if msg.type == "announce":
        body = AnnouncementRequest.model_validate(data)
        result = await session.send_announcement(
            body.title,
            body.content,
            body.recipient_ids,
            priority=body.priority,
            require_confirmation=body.require_confirmation,
            receiver_types=body.receiver_types,
        )
        return SendResultResponse.from_result(result).model_dump(mode="json")

    if msg.type == "mark_read":
        message = await session.mark_read(data["message_id"])
        return MessageResponse.model_validate(message).model_dump(mode="json")

    if msg.type == "mark_all_read":
        marked = await session.mark_all_read()
        return MarkAllReadResponse.from_result(marked).model_dump(mode="json")

    if msg.type == "mark_conversation_read":
        marked = await session.mark_conversation_read(data["key"])
        return MarkAllReadResponse.from_result(marked).model_dump(mode="json")

    if msg.type == "delete":
        await session.delete(data["message_id"])
        return {"deleted": data["message_id"]}

    if msg.type == "set_type_filter":
        raw_type = data.get("type")
        session.set_type_filter(MessageType(raw_type) if raw_type else None)
        return {}

    if msg.type == "set_search_text":
        session.set_search_text(str(data.get("text", "")))
        return {}

    if msg.type == "clear_error":
        session.clear_error()
        return {}

    # refresh
    ok = await session.refresh()
    return {"ok": ok}
