"""Ovation Sync — Structured JSON Logging.

Every record is one JSON line on stdout. Sync runs log through a
``RunLoggerAdapter`` so each line carries the run number it belongs to.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, MutableMapping, Tuple

from app.config import settings

ROOT_LOGGER = "ovation_sync"

# Extra attributes copied from a LogRecord into the JSON line when present.
EXTRA_FIELDS: Tuple[str, ...] = (
    "run",
    "survey_id",
    "endpoint",
    "status_code",
    "duration_ms",
)


class JSONFormatter(logging.Formatter):
    """Renders a LogRecord as a single JSON object tagged with the service."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "service": settings.service_name,
            "level": record.levelname,
            "logger": record.name.removeprefix(f"{ROOT_LOGGER}."),
            "msg": record.getMessage(),
        }
        entry.update(
            {key: getattr(record, key) for key in EXTRA_FIELDS if hasattr(record, key)}
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class RunLoggerAdapter(logging.LoggerAdapter):
    """Stamps the run number on every line; call-site ``extra`` is kept."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return root


def get_logger(name: str) -> logging.Logger:
    """Child of the ``ovation_sync`` logger; the JSON handler lives on the parent."""
    _configure_root()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def run_logger(logger: logging.Logger, run_no: int) -> RunLoggerAdapter:
    return RunLoggerAdapter(logger, {"run": run_no})
