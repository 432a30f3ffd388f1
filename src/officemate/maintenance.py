"""Periodic housekeeping: expired sessions and email verifications."""

import asyncio
import logging
from typing import Optional

from officemate.auth.email import EmailVerificationService
from officemate.auth.sessions import SessionManager
from officemate.cache.redis_client import RedisStore, get_redis_store
from officemate.db.database import get_db

logger = logging.getLogger(__name__)


async def cleanup_expired_sessions(store: Optional[RedisStore] = None) -> int:
    """Close session metadata rows whose Redis session has expired."""
    store = store or await get_redis_store()
    async with get_db() as session:
        return await SessionManager(store, session).cleanup_expired_metadata()


async def cleanup_expired_email_verifications(store: Optional[RedisStore] = None) -> int:
    store = store or await get_redis_store()
    async with get_db() as session:
        return await EmailVerificationService(session, store).cleanup_expired_verifications()


async def run_cleanup_once(store: Optional[RedisStore] = None) -> dict[str, int]:
    sessions = await cleanup_expired_sessions(store)
    verifications = await cleanup_expired_email_verifications(store)
    return {"sessions": sessions, "email_verifications": verifications}


async def run_periodic_cleanup(interval_seconds: int, store: Optional[RedisStore] = None) -> None:
    """Run cleanup every ``interval_seconds`` until cancelled.

    A failed round is logged and retried at the next interval.
    """
    logger.info(f"Maintenance loop started (every {interval_seconds}s)")
    while True:
        try:
            result = await run_cleanup_once(store)
            logger.debug(f"Maintenance round finished: {result}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Maintenance round failed: {e}")
        await asyncio.sleep(interval_seconds)
