"""
Shared pytest fixtures for the Validator Analytics test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema applied. Created anew for each test that requests it.
  - ``file_db``: A file-backed ``Database`` in ``tmp_path`` (schema applied),
    for code that opens its own short-lived sessions.
  - ``seeded_db``: ``file_db`` loaded with a small validator population.
  - Feature-vector and composite-score factories.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Callable, Generator

import pytest

from validator_analytics.config import AppConfig, DatabaseConfig, ScoringConfig
from validator_analytics.db.database import Database
from validator_analytics.db.importer import import_records
from validator_analytics.db.schema import apply_schema
from validator_analytics.models.features import ValidatorFeatureVector
from validator_analytics.models.score import CompositeScore
from validator_analytics.scoring.scorer import insufficient_data_score, score_full


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied.

    Foreign key enforcement is ON. Schema is applied idempotently.
    Connection is closed after the test.
    """
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    apply_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    """Default ``AppConfig`` pointed at a database file under ``tmp_path``."""
    return AppConfig(database=DatabaseConfig(db_path=str(tmp_path / "validator_analytics.db")))


@pytest.fixture
def file_db(app_config: AppConfig) -> Database:
    """File-backed ``Database`` with schema and migrations applied."""
    db = Database(app_config.database)
    db.initialize()
    return db


def sample_payload() -> dict[str, Any]:
    """Six validators: four fully covered, one short history, one brand new.

    ``vote-a`` .. ``vote-d`` have 60 epochs; ``vote-e`` has 3 (insufficient);
    ``vote-f`` has 2 (insufficient). ``vote-a`` and ``vote-c`` run MEV.
    """
    validators = [
        {"vote_account": "vote-a", "name": "Alpha", "commission_rate": 5.0, "epochs_active": 60,
         "stake_amount": 400_000.0, "uptime_percentage": 99.5, "is_mev_enabled": True,
         "category": "datacenter-eu"},
        {"vote_account": "vote-b", "name": "Bravo", "commission_rate": 8.0, "epochs_active": 60,
         "stake_amount": 300_000.0, "uptime_percentage": 98.0, "is_mev_enabled": False,
         "category": "datacenter-eu"},
        {"vote_account": "vote-c", "name": "Charlie", "commission_rate": 0.0, "epochs_active": 60,
         "stake_amount": 150_000.0, "uptime_percentage": 97.0, "is_mev_enabled": True,
         "category": "datacenter-us"},
        {"vote_account": "vote-d", "name": "Delta", "commission_rate": 12.0, "epochs_active": 60,
         "stake_amount": 100_000.0, "uptime_percentage": 95.0, "is_mev_enabled": False,
         "category": "home-staker"},
        {"vote_account": "vote-e", "name": "Echo", "commission_rate": 6.0, "epochs_active": 3,
         "stake_amount": 30_000.0, "uptime_percentage": 99.0, "is_mev_enabled": False},
        {"vote_account": "vote-f", "name": "Foxtrot", "commission_rate": 5.0, "epochs_active": 2,
         "stake_amount": 20_000.0, "is_mev_enabled": True},
    ]
    history = []
    performance = []
    for v in validators[:4]:
        for epoch in range(600, 610):
            rate = v["commission_rate"]
            if v["vote_account"] == "vote-d" and epoch >= 605:
                rate = 10.0
            month = 1 + (epoch - 600) // 2
            history.append({
                "validator_id": v["vote_account"],
                "epoch_number": epoch,
                "commission_rate": rate,
                "recorded_at": f"2026-{month:02d}-15T00:00:00Z",
            })
            performance.append({
                "validator_id": v["vote_account"],
                "epoch_number": epoch,
                "epoch_rewards": v["stake_amount"] * 0.0008,
                "uptime": v["uptime_percentage"],
                "vote_credits": 6000.0,
            })
    mev = [
        {"validator_id": "vote-a", "total_mev_rewards": 120.0, "avg_daily_mev": 0.5,
         "mev_consistency": 0.8},
        {"validator_id": "vote-c", "total_mev_rewards": 60.0, "avg_daily_mev": 0.25,
         "mev_consistency": 0.6},
    ]
    profiles = [
        {"user_id": "alice", "strategy": "maximize_yield", "risk_tolerance": "aggressive",
         "favorites": ["vote-d"], "blacklist": ["vote-b"]},
    ]
    return {
        "validators": validators,
        "commission_history": history,
        "performance": performance,
        "mev": mev,
        "profiles": profiles,
    }


@pytest.fixture
def sample_records() -> dict[str, Any]:
    """A fresh copy of ``sample_payload()`` for importer tests."""
    return sample_payload()


@pytest.fixture
def seeded_db(file_db: Database) -> Database:
    """``file_db`` loaded with ``sample_payload()``."""
    with file_db.session("seed test data") as conn:
        import_records(conn, sample_payload())
    return file_db


# ── Domain object factories ───────────────────────────────────────────────────

@pytest.fixture
def make_vector() -> Callable[..., ValidatorFeatureVector]:
    """Factory for well-covered feature vectors; override any field by keyword."""

    def _make(**overrides: Any) -> ValidatorFeatureVector:
        fields: dict[str, Any] = dict(
            validator_id="vote-test",
            commission_rate=5.0,
            epochs_active=60,
            stake_amount=100_000.0,
            is_mev_enabled=True,
            avg_commission_rate=5.0,
            commission_variance=0.25,
            commission_changes=1,
            history_epochs=60,
            avg_uptime=99.0,
            performance_epochs=50,
            total_mev_rewards=100.0,
            mev_consistency=0.8,
            performance_ratio=2.2,
            stability=0.9,
            estimated_yield_after_fees=7.0,
        )
        fields.update(overrides)
        return ValidatorFeatureVector(**fields)

    return _make


@pytest.fixture
def make_score(make_vector) -> Callable[..., CompositeScore]:
    """Factory producing full-path composite scores from vector overrides.

    ``insufficient=True`` produces a fallback score instead.
    """
    config = ScoringConfig()

    def _make(insufficient: bool = False, **overrides: Any) -> CompositeScore:
        if insufficient:
            return insufficient_data_score(
                overrides.get("validator_id", "vote-new"),
                overrides.get("commission_rate", 5.0),
                overrides.get("epochs_active", 2),
                config,
                stake_amount=overrides.get("stake_amount", 0.0),
                is_mev_enabled=overrides.get("is_mev_enabled", False),
                category=overrides.get("category"),
            )
        return score_full(make_vector(**overrides), config, min_epochs=5)

    return _make
