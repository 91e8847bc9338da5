"""
Record importer: JSON → SQLite.

Loads a telemetry export (validators, commission history, per-epoch
performance, MEV aggregates and optionally user profiles) into storage.

Input shape
-----------
::

    {
      "validators":         [{"vote_account": "...", "commission_rate": 5.0, ...}],
      "commission_history": [{"validator_id": "...", "epoch_number": 600,
                              "commission_rate": 5.0, "recorded_at": "2026-05-01T00:00:00Z"}],
      "performance":        [{"validator_id": "...", "epoch_number": 600,
                              "epoch_rewards": 12.5, "uptime": 99.1, "vote_credits": 950}],
      "mev":                [{"validator_id": "...", "total_mev_rewards": 40.0,
                              "avg_daily_mev": 0.2, "mev_consistency": 0.8}],
      "profiles":           [{"user_id": "...", "strategy": "balanced",
                              "favorites": ["..."], "blacklist": []}]
    }

Every section is optional.

Validation rules
----------------
- Duplicate ``vote_account`` values in the file are rejected.
- History, performance and MEV rows must reference a validator present in
  the file or already in storage.
- Field-level checks (commission bounds, weight sums) come from the models.

All writes happen in the caller's transaction; a rejected file writes nothing.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from validator_analytics.db.repositories.profile_repo import ProfileRepository
from validator_analytics.db.repositories.validator_repo import ValidatorRepository
from validator_analytics.models.recommendation import UserDelegationProfile
from validator_analytics.models.validator import (
    CommissionRecord,
    EpochPerformance,
    MevAggregate,
    ValidatorRecord,
)

logger = logging.getLogger(__name__)


@dataclass
class ImportCounts:
    """Rows written per section."""

    validators: int = 0
    commission_history: int = 0
    performance: int = 0
    mev: int = 0
    profiles: int = 0

    @property
    def total(self) -> int:
        return (
            self.validators + self.commission_history + self.performance
            + self.mev + self.profiles
        )


# ── Validation ────────────────────────────────────────────────────────────────

def _validate_validators(records: list[dict[str, Any]]) -> None:
    seen: set[str] = set()
    for i, rec in enumerate(records):
        account = rec.get("vote_account")
        if not account:
            raise ValueError(f"Validator at index {i} is missing 'vote_account'.")
        if account in seen:
            raise ValueError(f"Duplicate vote_account '{account}' at index {i}.")
        seen.add(account)


def _validate_references(
    section: str,
    records: list[dict[str, Any]],
    known: set[str],
    repo: ValidatorRepository,
) -> None:
    for i, rec in enumerate(records):
        validator_id = rec.get("validator_id")
        if not validator_id:
            raise ValueError(f"{section} row {i} is missing 'validator_id'.")
        if validator_id in known:
            continue
        if repo.get_validator(validator_id) is None:
            raise ValueError(f"{section} row {i} references unknown validator '{validator_id}'.")
        known.add(validator_id)


# ── Loader ────────────────────────────────────────────────────────────────────

def import_records(conn: sqlite3.Connection, payload: dict[str, Any]) -> ImportCounts:
    """Validate ``payload`` and write it through the repositories.

    Raises:
        ValueError: On any validation failure (including pydantic errors).
    """
    validators_raw = payload.get("validators", [])
    history_raw = payload.get("commission_history", [])
    performance_raw = payload.get("performance", [])
    mev_raw = payload.get("mev", [])
    profiles_raw = payload.get("profiles", [])

    _validate_validators(validators_raw)

    validator_repo = ValidatorRepository(conn)
    known = {rec["vote_account"] for rec in validators_raw}
    _validate_references("commission_history", history_raw, known, validator_repo)
    _validate_references("performance", performance_raw, known, validator_repo)
    _validate_references("mev", mev_raw, known, validator_repo)

    validators = [ValidatorRecord(**rec) for rec in validators_raw]
    history = [
        CommissionRecord(
            validator_id=rec["validator_id"],
            epoch_number=rec["epoch_number"],
            commission_rate=rec["commission_rate"],
        )
        for rec in history_raw
    ]
    stamps = [rec.get("recorded_at") for rec in history_raw]
    performance = [EpochPerformance(**rec) for rec in performance_raw]
    mev = [MevAggregate(**rec) for rec in mev_raw]
    profiles = [
        UserDelegationProfile(
            user_id=rec["user_id"],
            strategy=rec.get("strategy", "balanced"),
            risk_tolerance=rec.get("risk_tolerance", "balanced"),
            custom_weights=rec.get("custom_weights"),
            favorites=frozenset(rec.get("favorites", [])),
            blacklist=frozenset(rec.get("blacklist", [])),
        )
        for rec in profiles_raw
    ]

    counts = ImportCounts()
    for record in validators:
        validator_repo.upsert_validator(record)
    counts.validators = len(validators)

    if history:
        counts.commission_history = validator_repo.insert_commission_records(history, stamps)
    if performance:
        counts.performance = validator_repo.insert_performance_records(performance)
    for aggregate in mev:
        validator_repo.upsert_mev_aggregate(aggregate)
    counts.mev = len(mev)

    profile_repo = ProfileRepository(conn)
    for profile in profiles:
        profile_repo.upsert_profile(profile)
    counts.profiles = len(profiles)

    logger.info(
        "Imported %d validators, %d commission rows, %d performance rows, "
        "%d MEV aggregates, %d profiles",
        counts.validators, counts.commission_history, counts.performance,
        counts.mev, counts.profiles,
    )
    return counts


def import_records_file(conn: sqlite3.Connection, path: Path) -> ImportCounts:
    """Read a JSON export from ``path`` and import it."""
    with open(path, encoding="utf-8") as f:
        payload = json.load(f)
    if not isinstance(payload, dict):
        raise ValueError(f"{path}: expected a JSON object at the top level.")
    return import_records(conn, payload)
