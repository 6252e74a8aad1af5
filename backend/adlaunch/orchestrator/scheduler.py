"""Scheduler: APScheduler-based interval job for connection re-verification."""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from adlaunch.config import settings
from adlaunch.orchestrator.connection_monitor import ConnectionMonitor

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


async def _reverify_job() -> None:
    """Scheduled job: refresh funding/admin flags on every connection."""
    logger.info("Scheduler: connection re-verification triggered")
    try:
        summary = await ConnectionMonitor().reverify_all()
        logger.info("Scheduler: re-verification complete, %d connections checked", summary["checked"])
    except Exception as e:
        logger.error("Scheduler: re-verification failed: %s", e)


def start_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        return

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        _reverify_job,
        trigger=IntervalTrigger(minutes=settings.connection_reverify_interval_minutes),
        id="connection_reverify",
        name="Connection Re-verification",
        replace_existing=True,
    )
    _scheduler.start()
    logger.info(
        "Scheduler started, re-verifying connections every %d minutes",
        settings.connection_reverify_interval_minutes,
    )


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Scheduler stopped")
