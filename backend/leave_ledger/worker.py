"""Worker process for scheduled jobs.

Two asyncio loops run side by side:

* the daily loop runs accruals, the plan-year carryover and the carryover
  expiry sweep, each in its own session, at startup and then at
  ``daily_jobs_hour_utc`` each day;
* the poll loop escalates overdue requests and delivers due integration logs
  every ``sync_poll_interval_seconds``.

Every job is safe to re-run, so a crash between iterations only delays work.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from leave_ledger.config import get_settings
from leave_ledger.db import get_session_factory
from leave_ledger.models.base import now_utc

logger = logging.getLogger(__name__)


async def run_daily_jobs() -> None:
    """Run accruals, carryover and expiry once for today."""
    from leave_ledger.services.accrual import run_accruals
    from leave_ledger.services.carryover import run_carryover, run_expiry_sweep

    session_factory = get_session_factory()
    today = now_utc().date()

    try:
        async with session_factory() as session:
            await run_accruals(session, today)
    except Exception:
        logger.exception("Accrual run failed for %s", today)

    # Acts on the plan-year boundary, or later if that day was missed
    try:
        async with session_factory() as session:
            co_result = await run_carryover(session, today)
        if co_result.carried or co_result.forfeited:
            logger.info(
                "Carryover run for %s: carried=%d forfeited=%d skipped=%d errors=%d",
                today,
                co_result.carried,
                co_result.forfeited,
                co_result.skipped,
                co_result.errors,
            )
    except Exception:
        logger.exception("Carryover run failed for %s", today)

    try:
        async with session_factory() as session:
            exp_result = await run_expiry_sweep(session, today)
        if exp_result.expired:
            logger.info("Expiry sweep for %s: expired=%d errors=%d", today, exp_result.expired, exp_result.errors)
    except Exception:
        logger.exception("Expiry sweep failed for %s", today)


async def run_poll_jobs() -> None:
    """Escalate overdue requests, then push due integration logs."""
    from leave_ledger.services.integration import deliver_due_logs
    from leave_ledger.services.request import run_escalation_sweep

    session_factory = get_session_factory()

    try:
        async with session_factory() as session:
            await run_escalation_sweep(session)
    except Exception:
        logger.exception("Escalation sweep failed")

    try:
        async with session_factory() as session:
            sync_result = await deliver_due_logs(session)
        if sync_result.attempted:
            logger.info(
                "Integration sync: attempted=%d succeeded=%d failed=%d exhausted=%d",
                sync_result.attempted,
                sync_result.succeeded,
                sync_result.failed,
                sync_result.exhausted,
            )
    except Exception:
        logger.exception("Integration sync failed")


def seconds_until_next_daily_run(now: datetime) -> float:
    """Time from ``now`` to the next ``daily_jobs_hour_utc`` on the wall clock."""
    run_at = now.replace(hour=get_settings().daily_jobs_hour_utc, minute=0, second=0, microsecond=0)
    if run_at <= now:
        run_at += timedelta(days=1)
    return (run_at - now).total_seconds()


async def daily_loop() -> None:
    while True:
        await run_daily_jobs()
        await asyncio.sleep(seconds_until_next_daily_run(now_utc()))


async def poll_loop() -> None:
    interval = get_settings().sync_poll_interval_seconds
    while True:
        await run_poll_jobs()
        await asyncio.sleep(interval)


async def run_worker() -> None:
    logger.info("Leave ledger worker started")
    await asyncio.gather(daily_loop(), poll_loop())


def main() -> None:
    """Entry point for the worker process."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
