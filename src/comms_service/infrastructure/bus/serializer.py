"""JSON envelope for events published on the notification channel."""
from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, Enum):
            return o.value
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, (set, frozenset, tuple)):
            return list(o)
        return super().default(o)


def serialize_event(event_type: str, payload: dict[str, Any]) -> str:
    return json.dumps({"event": event_type, "data": payload}, cls=_Encoder)


def deserialize_event(raw: str | bytes) -> tuple[str, dict[str, Any]]:
    """Parse an envelope. Raises ValueError for anything that isn't one."""
    envelope = json.loads(raw)
    if not isinstance(envelope, dict) or not isinstance(envelope.get("event"), str):
        raise ValueError("Not an event envelope")
    data = envelope.get("data") or {}
    if not isinstance(data, dict):
        raise ValueError(f"Malformed payload for event {envelope['event']!r}")
    return envelope["event"], data
