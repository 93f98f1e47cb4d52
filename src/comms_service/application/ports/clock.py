from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Default wall-clock implementation."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class MonotonicClock:
    """Wraps another clock so that successive readings strictly increase.

    Send timestamps are the only ordering key, so two sends from the same
    sender must never share one even if the wall clock stalls or steps back.
    """

    _STEP = timedelta(microseconds=1)

    def __init__(self, base: Clock | None = None) -> None:
        self._base = base or SystemClock()
        self._last: datetime | None = None

    def now(self) -> datetime:
        ts = self._base.now()
        if self._last is not None and ts <= self._last:
            ts = self._last + self._STEP
        self._last = ts
        return ts
