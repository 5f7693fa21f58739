"""
Expiry sweeper: reclaims abandoned holds on a fixed interval.

The sweeper holds no state. Each pass opens its own session, runs
release_expired in one transaction and commits. Passes may overlap with
each other and with hold attempts; the conditional updates underneath make
that safe.
"""

import asyncio
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_sweep
from boxoffice.services.inventory_service import SweepResult, release_expired

logger = get_logger(__name__)


async def run_sweep(
    session_factory: async_sessionmaker,
    now: Optional[datetime] = None,
    trigger: str = "manual",
) -> SweepResult:
    async with session_factory() as db:
        try:
            result = await release_expired(db, now)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    record_sweep(trigger, result.released_locks, result.expired_orders)
    if result.released_locks or result.expired_orders:
        logger.info(
            "sweep_completed",
            trigger=trigger,
            released_locks=result.released_locks,
            expired_orders=result.expired_orders,
        )
    return result


async def sweeper_loop(session_factory: async_sessionmaker, interval_seconds: float) -> None:
    """Run sweeps until cancelled. A failed pass is logged and retried next tick."""
    logger.info("sweeper_started", interval_seconds=interval_seconds)
    try:
        while True:
            try:
                await run_sweep(session_factory, trigger="schedule")
            except Exception as e:
                # Driver errors such as a refused connection are not wrapped by SQLAlchemy
                logger.error("sweep_failed", error=str(e), exc_info=True)
            await asyncio.sleep(interval_seconds)
    except asyncio.CancelledError:
        logger.info("sweeper_stopped")
        raise
