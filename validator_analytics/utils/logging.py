"""
Logging setup for Validator Analytics.

``configure_logging(config)`` is called once by the CLI before any work runs.
Library modules only ever call ``logging.getLogger(__name__)``.

Context fields
--------------
Scoring runs are audited by ``run_slug`` and publish numbered snapshots, so log
lines that belong to a run carry those identifiers as ``extra=`` fields::

    logger.info("Published snapshot", extra=run_fields(run, snapshot_id=7))

Recognised fields (``CONTEXT_FIELDS``): stage, run_slug, snapshot_id,
validator_id, user_id. The text formatter appends the ones present as
``[stage=scoring_cycle run_slug=... snapshot_id=7]``; the JSON formatter
(``json_format = true``) emits them as top-level keys::

    {"ts": "2026-06-01T12:00:00Z", "level": "INFO", "logger": "...",
     "msg": "Published snapshot", "run_slug": "...", "snapshot_id": 7}
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from validator_analytics.config import LoggingConfig
    from validator_analytics.models.meta import RunMetadata

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

CONTEXT_FIELDS: tuple[str, ...] = (
    "stage",
    "run_slug",
    "snapshot_id",
    "validator_id",
    "user_id",
)


def run_fields(run: Optional["RunMetadata"] = None, **fields: Any) -> dict[str, Any]:
    """``extra=`` mapping for a pipeline run plus any other context fields.

    Unknown names and ``None`` values are dropped.
    """
    context: dict[str, Any] = {}
    if run is not None:
        context["stage"] = run.pipeline_stage
        context["run_slug"] = run.run_slug
        if run.snapshot_id is not None:
            context["snapshot_id"] = run.snapshot_id
    for name, value in fields.items():
        if name in CONTEXT_FIELDS and value is not None:
            context[name] = value
    return context


def _context_of(record: logging.LogRecord) -> dict[str, Any]:
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class _ContextFormatter(logging.Formatter):
    """Plain text line with the record's context fields appended."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context_of(record)
        if not context:
            return line
        suffix = " ".join(f"{k}={v}" for k, v in context.items())
        return f"{line} [{suffix}]"


class _JsonFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, msg, then context fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
                LOG_DATE_FORMAT
            ),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(_context_of(record))
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(config: "LoggingConfig") -> None:
    """Configure the root logger from the ``[logging]`` config section.

    A stdout handler always; a file handler when ``log_file`` is set (its
    directory is created). ``force=True`` replaces handlers from earlier calls.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)
    formatter: logging.Formatter = (
        _JsonFormatter()
        if config.json_format
        else _ContextFormatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers, force=True)
