from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from comms_service.api.middleware.correlation_id import CorrelationIdMiddleware
from comms_service.api.middleware.metrics import RequestTimingMiddleware
from comms_service.api.v1.routers import health, inbox, messages, ws
from comms_service.application.exceptions import (
    AppError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from comms_service.config import settings
from comms_service.infrastructure.bus.redis_pubsub import (
    NOTIFICATION_EVENT,
    RedisNotificationDispatcher,
    RedisPubSubSubscriber,
)

logger = logging.getLogger(__name__)


async def _on_pubsub_event(event_type: str, data: dict[str, Any]) -> None:
    """Fan a notification out to the recipient's live inbox sessions."""
    if event_type != NOTIFICATION_EVENT:
        return
    recipient_id = data.get("recipient_id")
    if not recipient_id:
        return
    await ws.get_manager().notify_user(str(recipient_id), data)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    logger.info("Redis connection pool created")

    app.state.notifier = RedisNotificationDispatcher(
        app.state.redis, settings.NOTIFICATION_CHANNEL,
    )
    app.state.inbox_manager = ws.get_manager()

    subscriber = RedisPubSubSubscriber(
        app.state.redis,
        settings.NOTIFICATION_CHANNEL,
        _on_pubsub_event,
    )
    await subscriber.start()
    app.state.pubsub_subscriber = subscriber

    yield

    await subscriber.stop()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="School Communications Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware, slow_request_ms=settings.SLOW_REQUEST_MS)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(messages.router)
    app.include_router(inbox.router)
    app.include_router(ws.router)

    return app


_ERROR_STATUS: dict[type[AppError], int] = {
    NotFoundError: 404,
    ForbiddenError: 403,
    ConflictError: 409,
    ValidationError: 422,
    StoreError: 503,
}


def _register_exception_handlers(app: FastAPI) -> None:
    async def _app_error(_req: Request, exc: AppError) -> JSONResponse:
        status_code = _ERROR_STATUS.get(type(exc), 500)
        if status_code >= 500:
            logger.warning("%s: %s", type(exc).__name__, exc.detail)
        return JSONResponse(status_code=status_code, content={"detail": exc.detail})

    for error_type in _ERROR_STATUS:
        app.add_exception_handler(error_type, _app_error)
