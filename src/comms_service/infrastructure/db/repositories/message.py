from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import AsyncIterator, Iterator

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from comms_service.application.exceptions import ConflictError, StoreError, ValidationError
from comms_service.domain.entities.message import Message
from comms_service.domain.value_objects.enums import MessageStatus
from comms_service.infrastructure.db.mappers import message as mapper
from comms_service.infrastructure.db.models.message import MessageModel

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        raise ConflictError(f"{operation}: message already exists") from exc
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Message store %s failed: %s", operation, exc)
        raise StoreError(f"Message store unavailable ({operation})") from exc


class SqlMessageStore:
    """Implements application.repositories.message.MessageStore.

    Each call runs in its own short-lived session so a store instance can be
    shared by long-lived inbox sessions and their background refreshes.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_by_id(self, message_id: str) -> Message | None:
        with _translate_errors("get_by_id"):
            async with self._session_factory() as session:
                model = await session.get(MessageModel, message_id)
                return mapper.model_to_entity(model) if model else None

    async def list_for_user(self, user_id: str) -> AsyncIterator[Message]:
        stmt = (
            select(MessageModel)
            .where(
                or_(
                    MessageModel.receiver_id == user_id,
                    MessageModel.sender_id == user_id,
                    MessageModel.receiver_ids.contains([user_id]),
                )
            )
            .order_by(MessageModel.timestamp.desc(), MessageModel.id.desc())
        )
        with _translate_errors("list_for_user"):
            async with self._session_factory() as session:
                result = await session.stream_scalars(stmt)
                async for model in result:
                    yield mapper.model_to_entity(model)

    async def list_for_conversation(self, conversation_id: str) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_id)
            .order_by(MessageModel.timestamp.asc(), MessageModel.id.asc())
        )
        with _translate_errors("list_for_conversation"):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def put(self, message: Message) -> str:
        with _translate_errors("put"):
            async with self._session_factory() as session:
                session.add(mapper.entity_to_model(message))
                await session.commit()
        return message.id

    async def set_status(
        self,
        message_id: str,
        status: MessageStatus,
        read_at: datetime | None = None,
    ) -> bool:
        if status != MessageStatus.READ:
            raise ValidationError("Messages can only transition to READ")
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == message_id)
            .values(
                status=status.value,
                read_at=func.coalesce(MessageModel.read_at, read_at or func.now()),
            )
        )
        with _translate_errors("set_status"):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount > 0

    async def delete(self, message_id: str) -> bool:
        stmt = delete(MessageModel).where(MessageModel.id == message_id)
        with _translate_errors("delete"):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount > 0
