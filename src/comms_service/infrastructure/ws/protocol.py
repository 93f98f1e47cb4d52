"""WebSocket message envelope models."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel

InboundType = Literal[
    "send",
    "reply",
    "announce",
    "mark_read",
    "mark_all_read",
    "mark_conversation_read",
    "delete",
    "set_type_filter",
    "set_search_text",
    "clear_error",
    "refresh",
    "ping",
]


class WsInbound(BaseModel):
    """Client → Server command."""

    type: InboundType
    request_id: str | None = None
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str  # state | result | notification | error | pong
    request_id: str | None = None
    data: dict[str, Any] = {}
