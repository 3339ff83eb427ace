"""Ovation Sync — Sync Engine Schemas."""

import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, model_validator


# ─────────────────────────────────────────────
# UPSTREAM — Ovation session and survey payloads
# ─────────────────────────────────────────────


class ApiSession(BaseModel):
    """Bearer token + API key pair issued by the Ovation token endpoint."""

    access_token: str
    api_key: str
    expires_at: datetime

    def is_stale(self, now: datetime, margin: timedelta) -> bool:
        return now >= self.expires_at - margin


class SurveyRecord(BaseModel):
    """A survey exactly as Ovation returns it, renamed to our vocabulary."""

    external_id: str = Field(alias="_id")
    company_external_id: Optional[str] = Field(default=None, alias="company")
    location_external_id: Optional[str] = Field(default=None, alias="location")
    customer_external_id: Optional[str] = Field(default=None, alias="customer")
    rating: Optional[int] = None
    feedback: Optional[str] = None
    source: Optional[str] = None
    response_message: Optional[str] = None
    response_by: Optional[str] = None
    response_time: Optional[datetime] = None
    created_at: datetime
    local_created_at: Optional[datetime] = None

    model_config = {"frozen": True, "populate_by_name": True, "extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def _default_local_created_at(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("local_created_at"):
            data = {**data, "local_created_at": data.get("created_at")}
        return data


# ─────────────────────────────────────────────
# ENGINE — windows, references, write outcomes
# ─────────────────────────────────────────────


class FetchWindow(BaseModel):
    """Creation-time range requested from Ovation. start <= end."""

    start: datetime
    end: datetime

    model_config = {"frozen": True}


class ResolvedReferences(BaseModel):
    """Internal ids for a survey's company/location/customer.

    A ``None`` id means there is no reference row to point at. Dimensions whose
    Ovation id was given but has no row yet are listed in ``missing``.
    """

    company_id: Optional[uuid.UUID] = None
    location_id: Optional[uuid.UUID] = None
    customer_id: Optional[uuid.UUID] = None
    missing: List[str] = Field(default_factory=list)


class UpsertOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"


# ─────────────────────────────────────────────
# REPORTING — run results, stats, health, status
# ─────────────────────────────────────────────


class RunResult(BaseModel):
    """Outcome of a single sync pass."""

    total_fetched: int
    new_surveys: int
    skipped_surveys: int
    timestamp: datetime

    model_config = {"frozen": True}


class RunStats(BaseModel):
    """Process-lifetime counters. Reset on restart."""

    total_runs: int = 0
    successful_runs: int = 0
    errors: int = 0
    last_run: Optional[datetime] = None
    last_success: Optional[datetime] = None
    surveys_processed: int = 0
    new_surveys_added: int = 0


class RunLogEntry(BaseModel):
    started_at: datetime
    finished_at: datetime
    success: bool
    total_fetched: int = 0
    new_surveys: int = 0
    skipped_surveys: int = 0
    error: Optional[str] = None


class HealthSnapshot(BaseModel):
    is_healthy: bool
    stats: RunStats
    time_since_last_success_minutes: Optional[int] = None


class DatabaseStatus(BaseModel):
    total_surveys: int
    latest_survey_date: Optional[datetime] = None


class OvationStatus(BaseModel):
    has_valid_token: bool
    token_expiry: Optional[datetime] = None


class StatusSnapshot(HealthSnapshot):
    service: str
    version: str
    uptime_seconds: float
    database: DatabaseStatus
    ovation: OvationStatus


class HistorySnapshot(BaseModel):
    recent_runs: List[RunLogEntry]
    summary: RunStats
