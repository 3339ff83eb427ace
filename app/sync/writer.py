"""Ovation Sync — Idempotent Survey Writer.

Surveys are keyed by their Ovation id. Before writing, the writer reads the
existing row so it can report whether the survey was new (INSERTED) or
already known (UPDATED); an upsert primitive alone cannot tell the two apart
on every backend. Each survey is committed on its own.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.core.logging import get_logger
from app.core.time_utils import ensure_utc
from app.models.survey_models import Survey
from app.models.sync_models import ResolvedReferences, SurveyRecord, UpsertOutcome
from app.sync.resolver import ReferenceResolver

logger = get_logger("sync.writer")


class PerRecordError(Exception):
    """A single survey could not be resolved or persisted."""

    def __init__(self, external_id: str, message: str):
        self.external_id = external_id
        super().__init__(f"Survey {external_id}: {message}")


def count_surveys(session: Session) -> int:
    return session.exec(select(func.count()).select_from(Survey)).one()


def _row_values(
    record: SurveyRecord, refs: ResolvedReferences, processed_at: datetime
) -> Dict[str, Any]:
    """Every non-key column of the surveys row."""
    return {
        "company_id": refs.company_id,
        "location_id": refs.location_id,
        "customer_id": refs.customer_id,
        "rating": record.rating,
        "feedback": record.feedback,
        "source": record.source,
        "response_message": record.response_message,
        "response_by": record.response_by,
        "response_time": ensure_utc(record.response_time) if record.response_time else None,
        "created_at": ensure_utc(record.created_at),
        "local_created_at": ensure_utc(record.local_created_at or record.created_at),
        "processed_at": processed_at,
    }


class UpsertWriter:
    def __init__(self, session: Session):
        self.session = session
        self.resolver = ReferenceResolver(session)

    def _find(self, external_id: str) -> Optional[Survey]:
        return self.session.exec(
            select(Survey).where(Survey.ovation_id == external_id)
        ).first()

    def upsert(self, record: SurveyRecord, now: datetime) -> UpsertOutcome:
        """Insert or overwrite the survey, stamping ``processed_at = now``."""
        try:
            refs = self.resolver.resolve_all(record)
            if refs.missing:
                logger.info(
                    f"Unresolved references: {', '.join(refs.missing)}",
                    extra={"survey_id": record.external_id},
                )
            return self._write(record.external_id, _row_values(record, refs, now))
        except Exception as e:
            self.session.rollback()
            raise PerRecordError(record.external_id, str(e)) from e

    def _write(self, external_id: str, values: Dict[str, Any]) -> UpsertOutcome:
        existing = self._find(external_id)
        if existing is None:
            self.session.add(Survey(ovation_id=external_id, **values))
            try:
                self.session.commit()
                return UpsertOutcome.INSERTED
            except IntegrityError:
                # Another writer inserted the same key first; fall through to update.
                self.session.rollback()
                existing = self._find(external_id)
                if existing is None:
                    raise

        for key, value in values.items():
            setattr(existing, key, value)
        self.session.add(existing)
        self.session.commit()
        return UpsertOutcome.UPDATED
