from __future__ import annotations

from typing import Protocol


class NotificationDispatcher(Protocol):
    """Best-effort push/alert delivery to a single recipient."""

    async def notify(self, recipient_id: str, title: str, body_preview: str) -> None: ...
