"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import HTTPConnection

from comms_service.application.dto.principal import Principal
from comms_service.application.ports.identity import (
    IdentityProvider,
    TokenVerifier,
    UserDirectory,
)
from comms_service.application.ports.notifier import NotificationDispatcher
from comms_service.application.repositories.message import MessageStore
from comms_service.config import settings
from comms_service.infrastructure.auth.hs256_verifier import HS256Verifier
from comms_service.infrastructure.auth.jwks_verifier import JWKSVerifier
from comms_service.infrastructure.db.repositories.message import SqlMessageStore
from comms_service.infrastructure.db.repositories.user import SqlUserDirectory
from comms_service.infrastructure.db.session import AsyncSessionLocal
from comms_service.services.compose_service import ComposeService

_bearer_scheme = HTTPBearer()

_store: SqlMessageStore | None = None
_users: SqlUserDirectory | None = None


def get_store() -> MessageStore:
    global _store  # noqa: PLW0603
    if _store is None:
        _store = SqlMessageStore(AsyncSessionLocal)
    return _store


def get_user_directory() -> UserDirectory:
    global _users  # noqa: PLW0603
    if _users is None:
        _users = SqlUserDirectory(AsyncSessionLocal)
    return _users


def get_notifier(conn: HTTPConnection) -> NotificationDispatcher:
    """Dispatcher created in the app lifespan (Redis Pub/Sub)."""
    return conn.app.state.notifier


StoreDep = Annotated[MessageStore, Depends(get_store)]
UserDirectoryDep = Annotated[UserDirectory, Depends(get_user_directory)]
NotifierDep = Annotated[NotificationDispatcher, Depends(get_notifier)]


def _get_verifier() -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        assert settings.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(settings.JWKS_URL)
    return HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = _get_verifier()
    return _verifier


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
) -> Principal:
    verifier = get_verifier()
    try:
        return await verifier.verify(credentials.credentials)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def build_compose_service(
    identity: IdentityProvider,
    store: MessageStore,
    notifier: NotificationDispatcher,
    users: UserDirectory,
) -> ComposeService:
    return ComposeService(
        identity.current_user_id(),
        store,
        notifier,
        users,
        preview_chars=settings.NOTIFICATION_PREVIEW_CHARS,
    )


def get_compose_service(
    principal: CurrentPrincipal,
    store: StoreDep,
    notifier: NotifierDep,
    users: UserDirectoryDep,
) -> ComposeService:
    return build_compose_service(principal, store, notifier, users)


ComposeDep = Annotated[ComposeService, Depends(get_compose_service)]
