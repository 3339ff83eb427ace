"""Ovation Sync — Sync Orchestrator.

Runs one sync pass:
  plan window → ensure session → fetch pages → resolve + upsert each survey → record stats

At most one pass runs at a time per orchestrator; a trigger that arrives while
a pass is in flight is rejected with ``SyncInProgressError``. This module is
the whole surface the scheduler and HTTP routes are allowed to use.
"""

import asyncio
import time
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session

from app.config import settings
from app.connectors.ovation.client import OvationClient
from app.connectors.ovation.endpoints import SurveyEndpoints
from app.core.logging import get_logger, run_logger
from app.core.time_utils import utc_now
from app.database import engine as default_engine
from app.models.sync_models import (
    DatabaseStatus,
    HealthSnapshot,
    HistorySnapshot,
    OvationStatus,
    RunResult,
    StatusSnapshot,
    UpsertOutcome,
)
from app.sync.stats import StatsTracker
from app.sync.window import WindowPlanner, latest_survey_date
from app.sync.writer import PerRecordError, UpsertWriter, count_surveys

logger = get_logger("sync.orchestrator")

_PROCESS_STARTED = time.monotonic()


class SyncInProgressError(Exception):
    """Raised when a sync is triggered while another is still running."""


class SyncOrchestrator:
    def __init__(
        self,
        client: Optional[OvationClient] = None,
        engine: Optional[Engine] = None,
        planner: Optional[WindowPlanner] = None,
        stats: Optional[StatsTracker] = None,
        company_ids: Optional[List[str]] = None,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.clock = clock
        self.client = client or OvationClient(clock=clock)
        self.engine = engine or default_engine
        self.endpoints = SurveyEndpoints(
            self.client, company_ids=company_ids, page_size=page_size, max_pages=max_pages
        )
        self.planner = planner or WindowPlanner()
        self.stats = stats or StatsTracker()
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    async def close(self) -> None:
        await self.client.close()

    # ── Sync ──

    async def run_sync(self) -> RunResult:
        """Run one sync pass, or reject immediately if one is in flight."""
        if self._run_lock.locked():
            logger.warning("Sync already in progress, rejecting trigger")
            raise SyncInProgressError("A sync run is already in progress")
        async with self._run_lock:
            return await self._run()

    async def _run(self) -> RunResult:
        run_no = self.stats.record_start(self.clock())
        log = run_logger(logger, run_no)
        started = time.monotonic()
        log.info(f"Starting sync run #{run_no}")

        new_surveys = 0
        skipped_surveys = 0
        try:
            # Closed before any network call so no transaction idles across HTTP waits.
            with Session(self.engine) as session:
                window = self.planner.compute_window(session, self.clock())

            await self.client.ensure_session()
            records = await self.endpoints.fetch_window(window)

            with Session(self.engine) as session:
                writer = UpsertWriter(session)
                for record in records:
                    try:
                        outcome = writer.upsert(record, self.clock())
                    except PerRecordError as e:
                        log.error(
                            f"Error processing survey: {e}",
                            extra={"survey_id": e.external_id},
                        )
                        continue
                    if outcome is UpsertOutcome.INSERTED:
                        new_surveys += 1
                    else:
                        skipped_surveys += 1
        except Exception as e:
            self.stats.record_failure(e, self.clock())
            log.error(f"Sync run #{run_no} failed: {e}")
            raise

        result = RunResult(
            total_fetched=len(records),
            new_surveys=new_surveys,
            skipped_surveys=skipped_surveys,
            timestamp=self.clock(),
        )
        self.stats.record_success(result, result.timestamp)
        log.info(
            f"Sync run #{run_no} complete. Fetched: {result.total_fetched}, "
            f"new: {new_surveys}, skipped: {skipped_surveys}",
            extra={"duration_ms": round((time.monotonic() - started) * 1000)},
        )
        return result

    # ── Status ──

    def get_health_status(self) -> HealthSnapshot:
        return self.stats.health(self.clock())

    def get_detailed_status(self) -> StatusSnapshot:
        """Health plus live store counts and token state, read at call time."""
        now = self.clock()
        health = self.stats.health(now)
        with Session(self.engine) as session:
            total_surveys = count_surveys(session)
            latest = latest_survey_date(session)

        api_session = self.client.session
        return StatusSnapshot(
            **health.model_dump(),
            service=settings.service_name,
            version=settings.service_version,
            uptime_seconds=round(time.monotonic() - _PROCESS_STARTED, 1),
            database=DatabaseStatus(total_surveys=total_surveys, latest_survey_date=latest),
            ovation=OvationStatus(
                has_valid_token=self.client.has_valid_session(now),
                token_expiry=api_session.expires_at if api_session else None,
            ),
        )

    def get_sync_history(self) -> HistorySnapshot:
        return HistorySnapshot(
            recent_runs=self.stats.history(), summary=self.stats.snapshot()
        )
