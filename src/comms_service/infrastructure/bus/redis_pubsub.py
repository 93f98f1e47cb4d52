"""Redis Pub/Sub: notification dispatch + subscriber background task."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

import redis.asyncio as aioredis

from comms_service.infrastructure.bus.serializer import deserialize_event, serialize_event

logger = logging.getLogger(__name__)

NOTIFICATION_EVENT = "inbox.notification"
_MAX_RECONNECT_DELAY = 30.0


class RedisNotificationDispatcher:
    """Implements application.ports.notifier.NotificationDispatcher.

    Publishes one event per recipient; push gateways and connected inbox
    sessions pick it up from the channel.
    """

    def __init__(self, redis: aioredis.Redis, channel: str) -> None:
        self._redis = redis
        self._channel = channel

    async def notify(self, recipient_id: str, title: str, body_preview: str) -> None:
        raw = serialize_event(
            NOTIFICATION_EVENT,
            {"recipient_id": recipient_id, "title": title, "body_preview": body_preview},
        )
        await self._redis.publish(self._channel, raw)


OnEventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


class RedisPubSubSubscriber:
    """Background task that listens to a Redis channel and dispatches events."""

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        callback: OnEventCallback,
        *,
        reconnect_delay: float = 1.0,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._callback = callback
        self._reconnect_delay = reconnect_delay
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._listen(), name="redis-pubsub-subscriber")
        logger.info("Redis Pub/Sub subscriber started on channel=%s", self._channel)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Redis Pub/Sub subscriber stopped")

    async def _listen(self) -> None:
        delay = self._reconnect_delay
        while True:
            try:
                await self._consume()
            except (aioredis.ConnectionError, aioredis.TimeoutError, OSError):
                logger.warning(
                    "Pub/Sub connection lost on %s; reconnecting in %.1fs",
                    self._channel, delay,
                    exc_info=True,
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, _MAX_RECONNECT_DELAY)
            else:
                delay = self._reconnect_delay

    async def _consume(self) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    event_type, data = deserialize_event(message["data"])
                except ValueError:
                    logger.warning("Dropping malformed event on %s", self._channel)
                    continue
                try:
                    await self._callback(event_type, data)
                except Exception:
                    logger.exception("Error handling %s event", event_type)
        finally:
            await pubsub.aclose()
