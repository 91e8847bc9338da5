"""
Abstract base class for all pipeline stages.

Every stage follows the same contract:
  1. Receive ``AppConfig`` (and optionally a ``Database``) at construction.
  2. ``run(**kwargs)`` is the sole public API.
  3. ``run()`` creates a ``RunMetadata`` record, calls ``_execute()``,
     and persists the run record with final status.
  4. ``_execute()`` is the stage-specific implementation (overridden by subclasses).

Stages never swallow exceptions: a failed ``_execute()`` is recorded as
``status='failed'`` and re-raised.

Usage::

    class MyStage(PipelineStage):
        stage_name = "import"

        def _execute(self, run: RunMetadata, **kwargs) -> int:
            return 42

    stage = MyStage(config=app_config)
    result = stage.run(path="data/raw/records.json")
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional
from uuid import uuid4

from validator_analytics.config import AppConfig
from validator_analytics.db.database import Database
from validator_analytics.db.repositories.run_repo import RunMetadataRepository
from validator_analytics.errors import StorageUnavailableError
from validator_analytics.models.meta import RunMetadata
from validator_analytics.utils.logging import run_fields
from validator_analytics.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class PipelineStage(ABC):
    """Abstract base for all pipeline stages.

    Attributes:
        stage_name: String identifier matching a valid ``RunMetadata.pipeline_stage``.
        config: The application configuration for this run.
        db: Storage handle (defaults to one built from ``config.database``).
    """

    stage_name: str  # Override in subclass

    def __init__(self, config: AppConfig, db: Optional[Database] = None) -> None:
        self.config = config
        self.db = db or Database(config.database)

    def run(self, **kwargs) -> RunMetadata:
        """Execute this pipeline stage.

        Returns:
            ``RunMetadata`` with final ``status``, ``rows_processed``,
            and ``finished_at`` set.

        Raises:
            Exception: Re-raises any exception from ``_execute()`` after
                recording ``status='failed'`` in the run record.
        """
        run = RunMetadata(
            run_slug=str(uuid4()),
            pipeline_stage=self.stage_name,
            config_snapshot=self.config.model_dump(),
            started_at=utcnow(),
        )
        logger.info("Stage [%s] starting", self.stage_name, extra=run_fields(run))

        try:
            rows = self._execute(run=run, **kwargs)
        except Exception as exc:
            run.status = "failed"
            run.error_message = str(exc)
            run.finished_at = utcnow()
            logger.error(
                "Stage [%s] FAILED: %s", self.stage_name, exc, extra=run_fields(run)
            )
            self._persist_run(run)
            raise

        if run.status == "started":
            run.status = "success"
        run.rows_processed = rows
        run.finished_at = utcnow()
        logger.info(
            "Stage [%s] %s | rows=%d", self.stage_name, run.status, rows,
            extra=run_fields(run),
        )
        self._persist_run(run)
        return run

    @abstractmethod
    def _execute(self, run: RunMetadata, **kwargs) -> int:
        """Stage-specific implementation.

        Args:
            run: The in-progress ``RunMetadata`` record (mutable). A stage may
                set ``status='skipped'`` when there was nothing to do.
            **kwargs: Stage-specific parameters.

        Returns:
            Integer count of rows/records processed.
        """
        ...

    def _persist_run(self, run: RunMetadata) -> None:
        """Write or update the run record.

        A storage failure here is logged rather than raised so it never masks
        the stage's own outcome or error.
        """
        try:
            with self.db.session("persist run metadata") as conn:
                repo = RunMetadataRepository(conn)
                if run.run_id is None:
                    run.run_id = repo.insert_run(run)
                else:
                    repo.update_run(run)
        except StorageUnavailableError as exc:
            logger.error("Failed to persist RunMetadata: %s", exc, extra=run_fields(run))
