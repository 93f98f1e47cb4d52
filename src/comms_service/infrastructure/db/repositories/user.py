from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from comms_service.application.exceptions import StoreError
from comms_service.infrastructure.db.models.user import UserModel


class SqlUserDirectory:
    """Implements application.ports.identity.UserDirectory.

    Unknown users resolve to their id so a send never fails on a missing
    directory entry.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def resolve_user_name(self, user_id: str) -> str:
        stmt = select(UserModel.display_name).where(UserModel.id == user_id)
        try:
            async with self._session_factory() as session:
                name = (await session.execute(stmt)).scalar_one_or_none()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError("User directory unavailable") from exc
        return name or user_id
