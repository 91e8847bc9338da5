"""
Data gatherer: assembles one ``ValidatorFeatureVector`` per validator.

Each ``gather`` call opens its own short-lived storage session, so
``gather_many`` can fan out over a bounded ``ThreadPoolExecutor`` without
sharing connections between threads. Results keep the input order. The first
storage failure propagates as ``StorageUnavailableError``; nothing is
zero-filled to paper over it.

Validators below ``gathering.min_epochs`` come back as an explicit
``InsufficientData`` marker rather than a feature vector.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from validator_analytics.config import GatheringConfig
from validator_analytics.db.database import Database
from validator_analytics.db.repositories.validator_repo import ValidatorRepository
from validator_analytics.features.derived import (
    MarketDistribution,
    commission_stability,
    commission_stats,
    compare_to_market,
    estimated_yield_after_fees,
    market_distribution,
    performance_ratio,
    performance_stats,
)
from validator_analytics.models.features import (
    EpochWindow,
    GatherResult,
    InsufficientData,
    MarketComparison,
    TrendAnalysis,
    ValidatorFeatureVector,
)
from validator_analytics.utils.logging import run_fields

logger = logging.getLogger(__name__)


class DataGatherer:
    """Builds feature vectors from the four storage query families.

    Args:
        db: Storage handle; one session is opened per call.
        config: Gathering windows and derived-indicator constants.
    """

    def __init__(self, db: Database, config: GatheringConfig) -> None:
        self.db = db
        self.config = config

    # ── Feature vectors ────────────────────────────────────────────────────────

    def gather(
        self,
        validator_id: str,
        window: Optional[EpochWindow] = None,
    ) -> GatherResult:
        """Return a feature vector, or ``InsufficientData`` for under-covered validators.

        Raises:
            LookupError: If the validator has no master record.
            StorageUnavailableError: If storage fails.
        """
        window = window or EpochWindow()
        cfg = self.config

        with self.db.session(f"gather {validator_id}") as conn:
            repo = ValidatorRepository(conn)
            record = repo.get_validator(validator_id)
            if record is None:
                raise LookupError(f"Unknown validator '{validator_id}'.")

            if record.epochs_active < cfg.min_epochs:
                logger.debug(
                    "Only %d epochs (< %d); marking insufficient",
                    record.epochs_active, cfg.min_epochs,
                    extra=run_fields(validator_id=validator_id),
                )
                return InsufficientData(
                    validator_id=validator_id,
                    epochs_active=record.epochs_active,
                    minimum_epochs=cfg.min_epochs,
                    commission_rate=record.commission_rate,
                    stake_amount=record.stake_amount,
                    is_mev_enabled=record.is_mev_enabled,
                    category=record.category,
                )

            commissions = repo.get_commission_history(
                validator_id, window.start_epoch, window.end_epoch,
                limit=cfg.commission_window_epochs,
            )
            performance = repo.get_performance_history(
                validator_id, window.start_epoch, window.end_epoch,
                limit=cfg.performance_window_epochs,
            )
            mev = repo.get_mev_aggregate(validator_id)

        c_stats = commission_stats(commissions)
        p_stats = performance_stats(performance)

        avg_uptime = p_stats.avg_uptime if p_stats else None
        if avg_uptime is None:
            avg_uptime = record.uptime_percentage
        mev_consistency = mev.mev_consistency if mev else None
        total_mev = mev.total_mev_rewards if mev else None

        history_epochs = c_stats.count if c_stats else 0
        epochs = [s.first_epoch for s in (c_stats, p_stats) if s] + [
            s.last_epoch for s in (c_stats, p_stats) if s
        ]

        return ValidatorFeatureVector(
            validator_id=validator_id,
            window_start=min(epochs) if epochs else window.start_epoch,
            window_end=max(epochs) if epochs else window.end_epoch,
            commission_rate=record.commission_rate,
            epochs_active=record.epochs_active,
            stake_amount=record.stake_amount,
            is_mev_enabled=record.is_mev_enabled,
            category=record.category,
            avg_commission_rate=c_stats.avg if c_stats else None,
            commission_variance=c_stats.variance if c_stats else None,
            commission_changes=c_stats.changes if c_stats else None,
            min_commission=c_stats.minimum if c_stats else None,
            max_commission=c_stats.maximum if c_stats else None,
            history_epochs=history_epochs,
            avg_epoch_rewards=p_stats.avg_rewards if p_stats else None,
            avg_uptime=avg_uptime,
            avg_vote_credits=p_stats.avg_vote_credits if p_stats else None,
            reward_variance=p_stats.reward_variance if p_stats else None,
            performance_epochs=p_stats.count if p_stats else 0,
            total_mev_rewards=total_mev,
            avg_mev_per_epoch=(
                total_mev / record.epochs_active if total_mev is not None else None
            ),
            mev_consistency=mev_consistency,
            performance_ratio=performance_ratio(
                record.commission_rate,
                avg_uptime,
                mev_consistency,
                p_stats.avg_vote_credits if p_stats else None,
                zero_commission_ratio=cfg.zero_commission_ratio,
            ),
            stability=commission_stability(
                history_epochs,
                c_stats.changes if c_stats else None,
                c_stats.variance if c_stats else None,
                sparse_history_epochs=cfg.sparse_history_epochs,
                neutral=cfg.neutral_stability,
            ),
            estimated_yield_after_fees=estimated_yield_after_fees(
                p_stats.avg_rewards if p_stats else None,
                total_mev,
                record.epochs_active,
                record.stake_amount,
                record.commission_rate,
                epochs_per_year=cfg.epochs_per_year,
            ),
        )

    def gather_many(
        self,
        validator_ids: list[str],
        window: Optional[EpochWindow] = None,
    ) -> list[GatherResult]:
        """Gather every id on a bounded worker pool, preserving input order."""
        if not validator_ids:
            return []
        workers = min(self.config.max_workers, len(validator_ids))
        logger.info("Gathering %d validators on %d workers", len(validator_ids), workers)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(lambda vid: self.gather(vid, window), validator_ids))

    def list_validator_ids(self) -> list[str]:
        with self.db.session("list validators") as conn:
            return ValidatorRepository(conn).list_validator_ids()

    # ── Market position and trends ─────────────────────────────────────────────

    def load_market_distribution(self) -> Optional[MarketDistribution]:
        """Quartiles of the population with ``epochs_active >= market_min_epochs``."""
        with self.db.session("market distribution") as conn:
            commissions = ValidatorRepository(conn).get_market_commissions(
                self.config.market_min_epochs
            )
        return market_distribution(commissions)

    def get_market_comparison(
        self,
        vector: ValidatorFeatureVector,
        market: Optional[MarketDistribution] = None,
    ) -> Optional[MarketComparison]:
        """Place ``vector`` in the commission population, or ``None`` if it is empty.

        Pass a preloaded ``market`` to avoid one query per validator.
        """
        market = market or self.load_market_distribution()
        if market is None:
            logger.warning("No comparable validators; skipping market comparison")
            return None
        return compare_to_market(vector.commission_rate, market)

    def analyze_trends(self, validator_id: str) -> TrendAnalysis:
        """Commission trend across the latest monthly buckets."""
        with self.db.session(f"commission trend {validator_id}") as conn:
            buckets = ValidatorRepository(conn).get_monthly_commission_trend(
                validator_id, self.config.trend_months
            )
        return trend_from_buckets(buckets)


def trend_from_buckets(buckets: list[tuple[str, float, int]]) -> TrendAnalysis:
    """Compare the first and last monthly average commission."""
    if len(buckets) < 2:
        return TrendAnalysis(
            trend_direction="insufficient_data",
            data_points=len(buckets),
            data_quality="limited" if buckets else "none",
        )
    first, last = buckets[0][1], buckets[-1][1]
    if last > first:
        direction = "increasing"
    elif last < first:
        direction = "decreasing"
    else:
        direction = "stable"
    return TrendAnalysis(
        trend_direction=direction,
        trend_strength=round(abs(last - first), 2),
        data_points=len(buckets),
        data_quality="good" if len(buckets) >= 3 else "limited",
    )
