"""Ovation Sync — Central Configuration via Pydantic Settings."""

import os
from datetime import datetime
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Ovation API ──
    ovation_base_url: str = "https://partner.ovationup.com/partner-services/v2"
    ovation_client_id: str = ""
    ovation_client_secret: str = ""
    ovation_partner_id: str = ""
    ovation_company_ids: str = ""  # comma separated

    # ── Database ──
    database_url: str = ""

    # ── App ──
    service_name: str = "ovation-survey-sync"
    service_version: str = "1.0.0"
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    sync_interval_minutes: int = 15
    sync_on_startup: bool = True
    initial_sync_delay_seconds: int = 30

    # ── Sync ──
    sync_page_size: int = 200
    sync_max_pages: int = 25
    sync_overlap_minutes: int = 60
    sync_default_start: datetime = datetime.fromisoformat("2024-01-01T00:00:00+00:00")
    sync_history_size: int = 20
    token_refresh_margin_minutes: int = 5
    health_window_minutes: int = 30
    request_timeout_seconds: float = 30.0

    @property
    def company_id_list(self) -> List[str]:
        """Split the comma separated company scope into ids."""
        return [c.strip() for c in self.ovation_company_ids.split(",") if c.strip()]

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/ovation_sync.db"
        return "sqlite:///./ovation_sync.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
