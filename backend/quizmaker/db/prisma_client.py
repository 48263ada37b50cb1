"""
Prisma database client for the application.

Usage:
    from quizmaker.db.prisma_client import get_prisma

    # In your service:
    job = await get_prisma().quizjob.find_unique(where={"id": job_id})

The client is created on first use and connected/disconnected in the
FastAPI lifespan (main.py). Stores accept an injected client so unit tests
never need a generated Prisma client.
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)

_prisma = None

# Max retries for transient DB connection failures
_MAX_CONNECT_RETRIES = 3
_RETRY_DELAY_SECONDS = 2.0


def get_prisma():
    """Return the process-wide Prisma client, creating it on first call."""
    global _prisma
    if _prisma is None:
        from prisma import Prisma

        _prisma = Prisma()
    return _prisma


async def connect_db(client: Optional[object] = None) -> None:
    """Connect the Prisma client to the database with retry logic.

    Retries up to _MAX_CONNECT_RETRIES times with linear backoff
    for transient connection failures.
    """
    db = client or get_prisma()
    if db.is_connected():
        logger.debug("Prisma client already connected")
        return

    last_exc = None
    for attempt in range(1, _MAX_CONNECT_RETRIES + 1):
        try:
            await db.connect()
            logger.info("Prisma client connected to database")
            return
        except Exception as e:
            last_exc = e
            if attempt < _MAX_CONNECT_RETRIES:
                delay = _RETRY_DELAY_SECONDS * attempt
                logger.warning(
                    "DB connect attempt %d/%d failed: %s; retrying in %.1fs",
                    attempt, _MAX_CONNECT_RETRIES, e, delay,
                )
                await asyncio.sleep(delay)
            else:
                logger.error("Failed to connect Prisma client after %d attempts: %s", _MAX_CONNECT_RETRIES, e)

    raise RuntimeError(f"Could not connect to database after {_MAX_CONNECT_RETRIES} attempts") from last_exc


async def disconnect_db(client: Optional[object] = None) -> None:
    """Disconnect the Prisma client from the database.

    Safe to call multiple times; skips if never created or already disconnected.
    """
    db = client or _prisma
    if db is None or not db.is_connected():
        logger.debug("Prisma client already disconnected")
        return
    try:
        await db.disconnect()
        logger.info("Prisma client disconnected from database")
    except Exception as e:
        logger.error("Error disconnecting Prisma client: %s", e)
        raise
