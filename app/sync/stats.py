"""Ovation Sync — Run Statistics & Health.

Counters live for the life of the process and are only moved by the
orchestrator: start, success, failure. Health is derived on every read.
"""

import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, List, Optional

from app.config import settings
from app.models.sync_models import HealthSnapshot, RunLogEntry, RunResult, RunStats


class StatsTracker:
    def __init__(
        self,
        health_window: timedelta | None = None,
        history_size: int | None = None,
    ):
        self.health_window = health_window or timedelta(
            minutes=settings.health_window_minutes
        )
        self._stats = RunStats()
        self._history: Deque[RunLogEntry] = deque(
            maxlen=history_size or settings.sync_history_size
        )
        self._current_start: Optional[datetime] = None
        self._lock = threading.Lock()

    def record_start(self, now: datetime) -> int:
        """Count a new run. Returns its run number."""
        with self._lock:
            self._stats.total_runs += 1
            self._stats.last_run = now
            self._current_start = now
            return self._stats.total_runs

    def record_success(self, result: RunResult, now: datetime) -> None:
        with self._lock:
            self._stats.surveys_processed += result.total_fetched
            self._stats.new_surveys_added += result.new_surveys
            self._stats.successful_runs += 1
            self._stats.last_success = now
            self._history.appendleft(
                RunLogEntry(
                    started_at=self._current_start or now,
                    finished_at=now,
                    success=True,
                    total_fetched=result.total_fetched,
                    new_surveys=result.new_surveys,
                    skipped_surveys=result.skipped_surveys,
                )
            )

    def record_failure(self, error: BaseException, now: datetime) -> None:
        with self._lock:
            self._stats.errors += 1
            self._history.appendleft(
                RunLogEntry(
                    started_at=self._current_start or now,
                    finished_at=now,
                    success=False,
                    error=str(error) or type(error).__name__,
                )
            )

    def snapshot(self) -> RunStats:
        with self._lock:
            return self._stats.model_copy()

    def history(self) -> List[RunLogEntry]:
        """Recent runs, newest first."""
        with self._lock:
            return list(self._history)

    def health(self, now: datetime) -> HealthSnapshot:
        """Healthy once a run has succeeded within the health window."""
        stats = self.snapshot()
        if stats.last_success is None:
            return HealthSnapshot(is_healthy=False, stats=stats)

        elapsed = now - stats.last_success
        return HealthSnapshot(
            is_healthy=stats.successful_runs > 0 and elapsed < self.health_window,
            stats=stats,
            time_since_last_success_minutes=round(elapsed.total_seconds() / 60),
        )
