"""Ovation Sync — Fetch Window Planning.

The watermark is the newest persisted survey's ``created_at``. Each run looks
back a fixed overlap before it so late-visible upstream writes are not missed;
the re-delivered surveys are absorbed by the idempotent upsert.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlmodel import Session, select

from app.config import settings
from app.core.logging import get_logger
from app.core.time_utils import ensure_utc
from app.models.survey_models import Survey
from app.models.sync_models import FetchWindow

logger = get_logger("sync.window")


def latest_survey_date(session: Session) -> Optional[datetime]:
    """Creation time of the newest stored survey, or None for an empty store."""
    latest = session.exec(
        select(Survey.created_at)
        .order_by(Survey.created_at.desc())  # type: ignore
        .limit(1)
    ).first()
    return ensure_utc(latest) if latest is not None else None


class WindowPlanner:
    def __init__(
        self,
        overlap: timedelta | None = None,
        default_start: datetime | None = None,
    ):
        self.overlap = overlap if overlap is not None else timedelta(
            minutes=settings.sync_overlap_minutes
        )
        self.default_start = ensure_utc(default_start or settings.sync_default_start)

    def compute_window(self, session: Session, now: datetime) -> FetchWindow:
        watermark = latest_survey_date(session)
        if watermark is None:
            logger.info(f"No surveys stored yet, starting from {self.default_start.isoformat()}")
            watermark = self.default_start

        end = ensure_utc(now)
        start = min(watermark - self.overlap, end)
        return FetchWindow(start=start, end=end)
