"""Ovation Sync — Scheduler Jobs.

APScheduler interval job that runs a sync every ``sync_interval_minutes``,
plus a one-off initial sync shortly after startup. Failures are logged and
swallowed; the next tick is the retry.
"""

from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.config import settings
from app.connectors.ovation.client import OvationAPIError
from app.core.logging import get_logger
from app.sync.orchestrator import SyncInProgressError, SyncOrchestrator

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def scheduled_sync_job(orchestrator: SyncOrchestrator):
    """Run one sync pass on behalf of the scheduler."""
    logger.info("Scheduled sync starting...")
    try:
        result = await orchestrator.run_sync()
        logger.info(f"Scheduled sync complete. New surveys: {result.new_surveys}")
    except SyncInProgressError:
        logger.info("Scheduled sync skipped: a run is already in progress")
    except OvationAPIError as e:
        logger.error(f"Scheduled sync failed (Ovation API): {e}")
    except Exception as e:
        logger.error(f"Scheduled sync failed: {e}")


def start_scheduler(orchestrator: SyncOrchestrator):
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        scheduled_sync_job,
        "interval",
        minutes=settings.sync_interval_minutes,
        args=[orchestrator],
        id="survey_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    if settings.sync_on_startup:
        scheduler.add_job(
            scheduled_sync_job,
            "date",
            run_date=datetime.now(timezone.utc)
            + timedelta(seconds=settings.initial_sync_delay_seconds),
            args=[orchestrator],
            id="initial_survey_sync",
            replace_existing=True,
        )
    scheduler.start()
    logger.info(f"Scheduler started. Sync every {settings.sync_interval_minutes} minutes")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
