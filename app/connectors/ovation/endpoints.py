"""Ovation Sync — Ovation Survey Endpoints.

Lists surveys created inside a fetch window, one bounded page at a time.
"""

from datetime import datetime
from typing import Any, Dict, List

from pydantic import ValidationError

from app.config import settings
from app.connectors.ovation.client import OvationClient, FetchError
from app.core.logging import get_logger
from app.core.time_utils import ensure_utc
from app.models.sync_models import FetchWindow, SurveyRecord

logger = get_logger("ovation.endpoints")

SURVEY_LIST_ENDPOINT = "/surveys/list"


def to_api_timestamp(dt: datetime) -> str:
    """Format as Ovation expects: UTC, millisecond precision, Z suffix."""
    return ensure_utc(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_surveys(rows: List[Dict[str, Any]]) -> List[SurveyRecord]:
    """Validate raw rows, dropping (and logging) the ones we can't use."""
    records: List[SurveyRecord] = []
    for row in rows:
        try:
            records.append(SurveyRecord.model_validate(row))
        except ValidationError as e:
            survey_id = row.get("_id") if isinstance(row, dict) else None
            logger.warning(
                f"Dropping malformed survey: {e.error_count()} validation errors",
                extra={"survey_id": survey_id},
            )
    return records


class SurveyEndpoints:
    """Fetch surveys for a window from Ovation."""

    def __init__(
        self,
        client: OvationClient,
        company_ids: List[str] | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
    ):
        self.client = client
        self.company_ids = (
            company_ids if company_ids is not None else settings.company_id_list
        )
        self.page_size = page_size or settings.sync_page_size
        self.max_pages = max_pages or settings.sync_max_pages

    async def _list_surveys(self, window: FetchWindow, skip: int) -> List[Dict[str, Any]]:
        payload = {
            "filters": {
                "created_at_range": [
                    to_api_timestamp(window.start),
                    to_api_timestamp(window.end),
                ],
                "company_ids": self.company_ids,
            },
            "limit": self.page_size,
            "skip": skip,
            "sort": {"created_at": 1},
        }
        response = await self.client.post(SURVEY_LIST_ENDPOINT, payload)

        if not response.get("success"):
            raise FetchError(
                f"Survey listing was not successful: {response.get('message', 'no message')}"
            )
        surveys = (response.get("data") or {}).get("surveys") or []
        if not isinstance(surveys, list):
            raise FetchError("Survey listing returned a non-list 'surveys' field")
        return surveys

    async def fetch_page(self, window: FetchWindow, skip: int = 0) -> List[SurveyRecord]:
        """Fetch one page of surveys, ascending by creation time."""
        return _parse_surveys(await self._list_surveys(window, skip))

    async def fetch_window(self, window: FetchWindow) -> List[SurveyRecord]:
        """Fetch every page in the window, up to ``max_pages``.

        Stops on the first short page. If the page bound is hit the rest of the
        window is left for a later run; the watermark only moves as far as the
        surveys actually persisted.
        """
        logger.info(
            f"Fetching surveys from {to_api_timestamp(window.start)} "
            f"to {to_api_timestamp(window.end)}"
        )
        records: List[SurveyRecord] = []
        skip = 0
        for _ in range(self.max_pages):
            rows = await self._list_surveys(window, skip)
            records.extend(_parse_surveys(rows))
            if len(rows) < self.page_size:
                break
            skip += self.page_size
        else:
            logger.warning(
                f"Stopped after {self.max_pages} pages of {self.page_size}; "
                "remaining surveys will be fetched by a later run"
            )

        logger.info(f"Fetched {len(records)} surveys from Ovation API")
        return records
