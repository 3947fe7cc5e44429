from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient_store_error(exc: BaseException) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


async def _attempt(db: AsyncSession, op: Callable[[], Awaitable[T]]) -> T:
    result = await op()
    await db.commit()
    return result


async def run_in_transaction(
    db: AsyncSession,
    op: Callable[[], Awaitable[T]],
    *,
    attempts: int | None = None,
    backoff_seconds: float | None = None,
    deadline_seconds: float | None = None,
) -> T:
    """Run ``op`` and commit, retrying transient store failures.

    ``op`` must be safe to re-run from scratch: it is re-invoked after a
    rollback. Any non-transient exception (domain errors included) rolls the
    session back and propagates unchanged. Exhausting the attempts or the
    deadline raises ``StoreUnavailable``.
    """
    attempts = attempts if attempts is not None else settings.store_retry_attempts
    backoff = backoff_seconds if backoff_seconds is not None else settings.store_retry_backoff_seconds
    deadline = deadline_seconds if deadline_seconds is not None else settings.store_deadline_seconds

    loop = asyncio.get_running_loop()
    started = loop.time()

    for attempt in range(1, attempts + 1):
        remaining = deadline - (loop.time() - started)
        if remaining <= 0:
            raise StoreUnavailable("Store deadline exceeded")

        try:
            return await asyncio.wait_for(_attempt(db, op), timeout=remaining)
        except asyncio.TimeoutError:
            await db.rollback()
            logger.error("store operation exceeded deadline of %.2fs", deadline)
            raise StoreUnavailable("Store deadline exceeded") from None
        except Exception as exc:
            await db.rollback()
            if not is_transient_store_error(exc):
                raise
            if attempt >= attempts:
                logger.error("store operation failed after %d attempts", attempts, exc_info=exc)
                raise StoreUnavailable("Store unavailable") from exc
            logger.warning("transient store error on attempt %d/%d, retrying", attempt, attempts, exc_info=exc)
            await asyncio.sleep(backoff * attempt)

    raise StoreUnavailable("Store unavailable")
