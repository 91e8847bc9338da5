"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``     : committed static defaults
  2. ``config/local.toml``       : optional local overrides (gitignored)
  3. ``.env``                    : local secrets and env overrides (gitignored)
  4. Environment variables       : ``VALIDATOR_ANALYTICS_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

Every calculator, stage and CLI command receives the same ``AppConfig``
instance. The scoring thresholds and benchmarks live in one place
(``ScoringConfig``) so sibling calculators can never drift apart.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

SUB_SCORE_NAMES: tuple[str, ...] = (
    "rate_competitiveness",
    "performance_ratio",
    "commission_stability",
    "value_proposition",
    "yield_after_fees",
)

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/validator_analytics.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/validator_analytics.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class GatheringConfig(BaseModel):
    """Feature extraction windows and derived-indicator constants."""

    model_config = ConfigDict(frozen=True)

    min_epochs: int = 5                    # epochs_active below this → insufficient data
    commission_window_epochs: int = 100
    performance_window_epochs: int = 50
    epochs_per_year: int = 73
    zero_commission_ratio: float = 10.0    # performance ratio used when commission == 0
    sparse_history_epochs: int = 5         # fewer commission points → neutral stability
    neutral_stability: float = 0.5
    market_min_epochs: int = 10            # population filter for market comparison
    trend_months: int = 6                  # monthly buckets used by analyze_trends
    max_workers: int = 8

    @field_validator("max_workers", "min_epochs")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be >= 1, got {v}.")
        return v


class ScoringWeights(BaseModel):
    """Composite weights in percent. Must sum to 100."""

    model_config = ConfigDict(frozen=True)

    rate_competitiveness: float = 35.0
    performance_ratio: float = 25.0
    commission_stability: float = 20.0
    value_proposition: float = 12.0
    yield_after_fees: float = 8.0

    @model_validator(mode="after")
    def validate_sum(self) -> "ScoringWeights":
        total = sum(getattr(self, name) for name in SUB_SCORE_NAMES)
        if abs(total - 100.0) > 0.01:
            raise ValueError(f"Scoring weights must sum to 100, got {total:.4f}.")
        return self

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in SUB_SCORE_NAMES}


class ScoringThresholds(BaseModel):
    """Commission tiers (percent) and ratio floor used by the calculators."""

    model_config = ConfigDict(frozen=True)

    excellent_commission: float = 5.0
    good_commission: float = 7.5
    acceptable_commission: float = 10.0
    high_commission: float = 15.0
    market_average_commission: float = 8.5
    minimum_performance_ratio: float = 1.2
    market_adjustment_cap: float = 15.0


class YieldBenchmarks(BaseModel):
    """Annual net-yield benchmarks (percent)."""

    model_config = ConfigDict(frozen=True)

    average_yield: float = 4.5
    good_yield: float = 6.0
    excellent_yield: float = 8.0
    market_average_yield: float = 5.2

    @model_validator(mode="after")
    def validate_order(self) -> "YieldBenchmarks":
        if not 0 < self.average_yield < self.good_yield < self.excellent_yield:
            raise ValueError(
                "Yield benchmarks must satisfy 0 < average < good < excellent."
            )
        return self


class InsufficientDataConfig(BaseModel):
    """Constants of the conservative fallback score.

    The fallback is a heuristic, so every number here is tunable rather than
    authoritative.
    """

    model_config = ConfigDict(frozen=True)

    base_score_floor: float = 10.0
    base_score_offset: float = 60.0
    points_per_epoch: float = 2.0
    max_score: float = 50.0
    confidence_per_epoch: float = 2.5
    max_confidence: float = 25.0
    rate_offset: float = 70.0
    performance_ratio: float = 30.0
    commission_stability: float = 40.0
    value_proposition: float = 35.0
    yield_after_fees: float = 25.0


class MissingHistoryDefaults(BaseModel):
    """Pessimistic values substituted for absent commission history."""

    model_config = ConfigDict(frozen=True)

    commission_changes: int = 10
    commission_variance: float = 100.0


class ScoringConfig(BaseModel):
    """Shared configuration for every score calculator."""

    model_config = ConfigDict(frozen=True)

    weights: ScoringWeights = ScoringWeights()
    thresholds: ScoringThresholds = ScoringThresholds()
    benchmarks: YieldBenchmarks = YieldBenchmarks()
    insufficient: InsufficientDataConfig = InsufficientDataConfig()
    missing: MissingHistoryDefaults = MissingHistoryDefaults()


class RankingConfig(BaseModel):
    """Ranking categories and weight-vector tolerance."""

    model_config = ConfigDict(frozen=True)

    weight_tolerance: float = 0.01
    category_weights: dict[str, dict[str, float]] = {
        "performance": {
            "rate_competitiveness": 10.0, "performance_ratio": 45.0,
            "commission_stability": 10.0, "value_proposition": 25.0,
            "yield_after_fees": 10.0,
        },
        "reliability": {
            "rate_competitiveness": 10.0, "performance_ratio": 15.0,
            "commission_stability": 50.0, "value_proposition": 20.0,
            "yield_after_fees": 5.0,
        },
        "cost": {
            "rate_competitiveness": 60.0, "performance_ratio": 15.0,
            "commission_stability": 10.0, "value_proposition": 5.0,
            "yield_after_fees": 10.0,
        },
        "yield": {
            "rate_competitiveness": 15.0, "performance_ratio": 15.0,
            "commission_stability": 10.0, "value_proposition": 20.0,
            "yield_after_fees": 40.0,
        },
    }
    metric_categories: dict[str, str] = {
        "uptime": "uptime",
        "mev": "total_mev_rewards",
    }


class ComparisonConfig(BaseModel):
    """Cohort comparison settings."""

    model_config = ConfigDict(frozen=True)

    min_sample_size: int = 5
    critical_value: float = 1.96


class RiskProfileConfig(BaseModel):
    """Weights and filters attached to a risk-tolerance level."""

    model_config = ConfigDict(frozen=True)

    weights: dict[str, float]
    max_commission: float
    min_confidence: float = 0.0
    max_stake_share: float = 1.0


class StrategyConfig(BaseModel):
    """A named delegation strategy preset."""

    model_config = ConfigDict(frozen=True)

    description: str
    weights: dict[str, float]
    max_stake_share: Optional[float] = None


def _w(rate: float, ratio: float, stability: float, value: float, yld: float) -> dict[str, float]:
    return dict(zip(SUB_SCORE_NAMES, (rate, ratio, stability, value, yld)))


class RecommendationConfig(BaseModel):
    """Personalized recommendation and cache settings."""

    model_config = ConfigDict(frozen=True)

    default_count: int = 10
    max_count: int = 50
    cache_ttl_seconds: float = 1800.0
    stale_grace_seconds: float = 300.0
    wait_timeout_seconds: Optional[float] = 30.0
    favorite_bonus: float = 0.5
    min_diversified_count: int = 5
    concentration_threshold: float = 0.6
    commission_bands: list[float] = [0.0, 5.0, 8.0, 10.0, 100.0]
    max_alternates: int = 3
    stake_concentration_threshold: float = 0.10
    strategies: dict[str, StrategyConfig] = {
        "balanced": StrategyConfig(
            description="Balanced approach considering all factors",
            weights=_w(35, 25, 20, 12, 8),
        ),
        "maximize_mev": StrategyConfig(
            description="Maximize MEV earnings potential",
            weights=_w(15, 25, 10, 30, 20),
        ),
        "maximize_safety": StrategyConfig(
            description="Prioritize validator reliability and safety",
            weights=_w(20, 15, 40, 15, 10),
        ),
        "cost_optimize": StrategyConfig(
            description="Minimize delegation costs and fees",
            weights=_w(50, 20, 10, 10, 10),
        ),
        "maximize_yield": StrategyConfig(
            description="Maximize net yield after fees",
            weights=_w(10, 20, 10, 20, 40),
        ),
        "support_decentralization": StrategyConfig(
            description="Support network decentralization",
            weights=_w(25, 20, 25, 20, 10),
            max_stake_share=0.01,
        ),
    }
    risk_profiles: dict[str, RiskProfileConfig] = {
        "conservative": RiskProfileConfig(
            weights=_w(30, 20, 30, 12, 8),
            max_commission=8.0,
            min_confidence=60.0,
            max_stake_share=0.02,
        ),
        "balanced": RiskProfileConfig(
            weights=_w(35, 25, 20, 12, 8),
            max_commission=10.0,
            min_confidence=40.0,
            max_stake_share=0.03,
        ),
        "aggressive": RiskProfileConfig(
            weights=_w(25, 25, 10, 20, 20),
            max_commission=15.0,
            min_confidence=0.0,
            max_stake_share=0.05,
        ),
    }

    @model_validator(mode="after")
    def validate_presets(self) -> "RecommendationConfig":
        if "balanced" not in self.strategies:
            raise ValueError("A 'balanced' strategy preset is required.")
        if "balanced" not in self.risk_profiles:
            raise ValueError("A 'balanced' risk profile is required.")
        if self.default_count > self.max_count:
            raise ValueError("default_count must be <= max_count.")
        return self


class SchedulerConfig(BaseModel):
    """Batch scoring cycle cadence."""

    model_config = ConfigDict(frozen=True)

    interval_minutes: int = 60
    step_timeout_seconds: int = 3600
    keep_snapshots: int = 5               # published snapshots retained after each cycle


class AppConfig(BaseModel):
    """Complete application configuration: the single source of truth.

    Constructed by ``load_config()`` which merges TOML + .env.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    logging: LoggingConfig = LoggingConfig()
    gathering: GatheringConfig = GatheringConfig()
    scoring: ScoringConfig = ScoringConfig()
    ranking: RankingConfig = RankingConfig()
    comparison: ComparisonConfig = ComparisonConfig()
    recommendations: RecommendationConfig = RecommendationConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    dotenv_path = root / ".env"
    load_dotenv(dotenv_path=dotenv_path, override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config explicitly."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply VALIDATOR_ANALYTICS_* env vars to the raw config dict.

    Supported overrides:
      VALIDATOR_ANALYTICS_DB_PATH            → raw["database"]["db_path"]
      VALIDATOR_ANALYTICS_LOG_LEVEL          → raw["logging"]["level"]
      VALIDATOR_ANALYTICS_CACHE_TTL_SECONDS  → raw["recommendations"]["cache_ttl_seconds"]
      VALIDATOR_ANALYTICS_DEBUG              → raw["debug"]
    """
    if db_path := os.environ.get("VALIDATOR_ANALYTICS_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("VALIDATOR_ANALYTICS_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if ttl := os.environ.get("VALIDATOR_ANALYTICS_CACHE_TTL_SECONDS"):
        raw.setdefault("recommendations", {})["cache_ttl_seconds"] = float(ttl)

    if debug := os.environ.get("VALIDATOR_ANALYTICS_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        gathering=GatheringConfig(**raw.get("gathering", {})),
        scoring=ScoringConfig(**raw.get("scoring", {})),
        ranking=RankingConfig(**raw.get("ranking", {})),
        comparison=ComparisonConfig(**raw.get("comparison", {})),
        recommendations=RecommendationConfig(**raw.get("recommendations", {})),
        scheduler=SchedulerConfig(**raw.get("scheduler", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
