"""
ImportStage: load a JSON telemetry export into storage as an audited run.

The whole file is validated and written in one transaction; a rejected file
leaves storage untouched and the run is recorded as failed.

Returns the total number of rows written.
"""

from __future__ import annotations

import logging
from pathlib import Path

from validator_analytics.db.importer import import_records_file
from validator_analytics.models.meta import RunMetadata
from validator_analytics.pipeline.base import PipelineStage

logger = logging.getLogger(__name__)


class ImportStage(PipelineStage):
    """Validate and import validators, histories, MEV aggregates and profiles."""

    stage_name = "import"

    def _execute(self, run: RunMetadata, path: Path, **kwargs) -> int:
        logger.info("Importing records from %s", path)
        with self.db.session(f"import {path}") as conn:
            counts = import_records_file(conn, Path(path))
        return counts.total
