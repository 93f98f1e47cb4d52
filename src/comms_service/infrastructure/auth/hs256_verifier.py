from __future__ import annotations

import jwt

from comms_service.application.dto.principal import Principal


def principal_from_claims(payload: dict) -> Principal:
    subject = payload.get("sub")
    if not subject:
        raise jwt.InvalidTokenError("Token has no subject")
    return Principal(
        subject_id=str(subject),
        name=payload.get("name"),
        roles=list(payload.get("roles", [])),
    )


class HS256Verifier:
    """Verify JWTs signed with a shared HS256 secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Principal:
        payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        return principal_from_claims(payload)
