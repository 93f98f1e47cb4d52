from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

from comms_service.config import settings
from comms_service.infrastructure.db.base import Base

engine = create_async_engine(
    settings.database_url,
    poolclass=AsyncAdaptedQueuePool,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
    pool_recycle=settings.DB_POOL_RECYCLE,
    echo=False,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)


async def create_all(bind: AsyncEngine = engine) -> None:
    """Create missing tables (dev/test bootstrap; production schemas are migrated)."""
    import comms_service.infrastructure.db.models  # noqa: F401  registers tables

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
