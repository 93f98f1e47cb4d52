from __future__ import annotations

from typing import Protocol

from comms_service.application.dto.principal import Principal


class IdentityProvider(Protocol):
    def current_user_id(self) -> str: ...


class UserDirectory(Protocol):
    async def resolve_user_name(self, user_id: str) -> str: ...


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> Principal: ...
