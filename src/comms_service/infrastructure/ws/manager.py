"""In-process registry of live inbox sessions and their WebSocket connections."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import WebSocket

from comms_service.infrastructure.ws.protocol import WsOutbound
from comms_service.services.inbox_service import InboxSession

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks one InboxSession per WebSocket, grouped by user."""

    def __init__(self) -> None:
        self._connections: dict[str, dict[WebSocket, InboxSession]] = {}

    def register(self, ws: WebSocket, session: InboxSession) -> None:
        self._connections.setdefault(session.user_id, {})[ws] = session
        logger.debug(
            "Inbox session registered: %s (connections=%d)",
            session.user_id, len(self._connections[session.user_id]),
        )

    def unregister(self, ws: WebSocket, user_id: str) -> None:
        conns = self._connections.get(user_id)
        if conns:
            conns.pop(ws, None)
            if not conns:
                del self._connections[user_id]
        logger.debug("Inbox session unregistered: %s", user_id)

    def sessions_for(self, user_id: str) -> list[InboxSession]:
        return list(self._connections.get(user_id, {}).values())

    @property
    def user_count(self) -> int:
        return len(self._connections)

    async def notify_user(self, user_id: str, data: dict[str, Any]) -> None:
        """Forward a notification to the user's sockets and refresh their inboxes."""
        conns = self._connections.get(user_id, {})
        raw = WsOutbound(type="notification", data=data).model_dump_json()
        dead: list[WebSocket] = []
        for ws, session in list(conns.items()):
            session.schedule_refresh()
            try:
                await ws.send_text(raw)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.unregister(ws, user_id)
