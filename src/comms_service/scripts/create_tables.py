"""One-time script: create the messages and users tables if they are missing."""
from __future__ import annotations

import asyncio
import logging

from comms_service.infrastructure.db.session import create_all, engine

logger = logging.getLogger(__name__)


async def create_tables() -> None:
    try:
        await create_all(engine)
        logger.info("Tables created")
    finally:
        await engine.dispose()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(create_tables())


if __name__ == "__main__":
    main()
