"""
SQLite schema DDL: all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. after restart or in tests).

Table creation order respects foreign key dependencies:
  1. validators                (no FKs)
  2. commission_history        (→ validators)
  3. validator_performance     (→ validators)
  4. validator_historical_mev  (→ validators)
  5. user_profiles             (no FKs)
  6. user_favorites            (→ user_profiles)
  7. user_blacklist            (→ user_profiles)
  8. run_metadata              (no FKs)
  9. score_snapshots           (→ run_metadata)
  10. validator_scores         (→ score_snapshots)
  11. ranking_entries          (→ score_snapshots)

Favorites and blacklist entries reference validators only logically: a user
may keep a favorite that has since left the validator set.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_VALIDATORS = """
CREATE TABLE IF NOT EXISTS validators (
    vote_account        TEXT    NOT NULL PRIMARY KEY,
    name                TEXT,
    commission_rate     REAL    NOT NULL CHECK (commission_rate BETWEEN 0 AND 100),
    epochs_active       INTEGER NOT NULL DEFAULT 0,
    stake_amount        REAL    NOT NULL DEFAULT 0.0,
    uptime_percentage   REAL,
    is_mev_enabled      INTEGER NOT NULL DEFAULT 0,
    category            TEXT,
    updated_at          TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_COMMISSION_HISTORY = """
CREATE TABLE IF NOT EXISTS commission_history (
    history_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    validator_id    TEXT    NOT NULL REFERENCES validators(vote_account),
    epoch_number    INTEGER NOT NULL,
    commission_rate REAL    NOT NULL CHECK (commission_rate BETWEEN 0 AND 100),
    recorded_at     TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    UNIQUE (validator_id, epoch_number)
);

CREATE INDEX IF NOT EXISTS idx_commission_validator_epoch
    ON commission_history(validator_id, epoch_number DESC);
"""

_DDL_VALIDATOR_PERFORMANCE = """
CREATE TABLE IF NOT EXISTS validator_performance (
    performance_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    validator_id    TEXT    NOT NULL REFERENCES validators(vote_account),
    epoch_number    INTEGER NOT NULL,
    epoch_rewards   REAL    NOT NULL DEFAULT 0.0,
    uptime          REAL,
    vote_credits    REAL,
    stake_amount    REAL,
    UNIQUE (validator_id, epoch_number)
);

CREATE INDEX IF NOT EXISTS idx_performance_validator_epoch
    ON validator_performance(validator_id, epoch_number DESC);
"""

_DDL_VALIDATOR_HISTORICAL_MEV = """
CREATE TABLE IF NOT EXISTS validator_historical_mev (
    validator_id        TEXT    NOT NULL PRIMARY KEY REFERENCES validators(vote_account),
    total_mev_rewards   REAL    NOT NULL DEFAULT 0.0,
    avg_daily_mev       REAL    NOT NULL DEFAULT 0.0,
    mev_consistency     REAL    NOT NULL DEFAULT 0.0,
    epochs_covered      INTEGER,
    updated_at          TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_USER_PROFILES = """
CREATE TABLE IF NOT EXISTS user_profiles (
    user_id         TEXT    NOT NULL PRIMARY KEY,
    strategy        TEXT    NOT NULL DEFAULT 'balanced',
    risk_tolerance  TEXT    NOT NULL DEFAULT 'balanced',
    custom_weights  TEXT,
    updated_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_USER_FAVORITES = """
CREATE TABLE IF NOT EXISTS user_favorites (
    user_id         TEXT    NOT NULL REFERENCES user_profiles(user_id) ON DELETE CASCADE,
    validator_id    TEXT    NOT NULL,
    added_at        TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    PRIMARY KEY (user_id, validator_id)
);
"""

_DDL_USER_BLACKLIST = """
CREATE TABLE IF NOT EXISTS user_blacklist (
    user_id         TEXT    NOT NULL REFERENCES user_profiles(user_id) ON DELETE CASCADE,
    validator_id    TEXT    NOT NULL,
    added_at        TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    PRIMARY KEY (user_id, validator_id)
);
"""

_DDL_RUN_METADATA = """
CREATE TABLE IF NOT EXISTS run_metadata (
    run_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    run_slug        TEXT    NOT NULL UNIQUE,
    pipeline_stage  TEXT    NOT NULL,
    status          TEXT    NOT NULL DEFAULT 'started',
    config_snapshot TEXT    NOT NULL,
    rows_processed  INTEGER NOT NULL DEFAULT 0,
    snapshot_id     INTEGER,
    error_message   TEXT,
    started_at      TEXT    NOT NULL,
    finished_at     TEXT
);
"""

_DDL_SCORE_SNAPSHOTS = """
CREATE TABLE IF NOT EXISTS score_snapshots (
    snapshot_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id          INTEGER REFERENCES run_metadata(run_id),
    generated_at    TEXT    NOT NULL,
    validator_count INTEGER NOT NULL DEFAULT 0,
    category_weights TEXT   NOT NULL DEFAULT '{}',
    status          TEXT    NOT NULL DEFAULT 'pending'
                            CHECK (status IN ('pending', 'published'))
);

CREATE INDEX IF NOT EXISTS idx_snapshots_published
    ON score_snapshots(status, snapshot_id DESC);
"""

_DDL_VALIDATOR_SCORES = """
CREATE TABLE IF NOT EXISTS validator_scores (
    snapshot_id         INTEGER NOT NULL REFERENCES score_snapshots(snapshot_id) ON DELETE CASCADE,
    validator_id        TEXT    NOT NULL,
    composite_score     REAL    NOT NULL,
    confidence_level    REAL    NOT NULL,
    grade               TEXT    NOT NULL,
    insufficient_data   INTEGER NOT NULL DEFAULT 0,
    payload             TEXT    NOT NULL,
    PRIMARY KEY (snapshot_id, validator_id)
);
"""

_DDL_RANKING_ENTRIES = """
CREATE TABLE IF NOT EXISTS ranking_entries (
    snapshot_id     INTEGER NOT NULL REFERENCES score_snapshots(snapshot_id) ON DELETE CASCADE,
    category        TEXT    NOT NULL,
    rank            INTEGER NOT NULL,
    validator_id    TEXT    NOT NULL,
    composite_score REAL    NOT NULL,
    grade           TEXT    NOT NULL,
    payload         TEXT    NOT NULL,
    PRIMARY KEY (snapshot_id, category, rank)
);

CREATE INDEX IF NOT EXISTS idx_ranking_entries_validator
    ON ranking_entries(snapshot_id, validator_id);
"""

_ALL_DDL: list[str] = [
    _DDL_VALIDATORS,
    _DDL_COMMISSION_HISTORY,
    _DDL_VALIDATOR_PERFORMANCE,
    _DDL_VALIDATOR_HISTORICAL_MEV,
    _DDL_USER_PROFILES,
    _DDL_USER_FAVORITES,
    _DDL_USER_BLACKLIST,
    _DDL_RUN_METADATA,
    _DDL_SCORE_SNAPSHOTS,
    _DDL_VALIDATOR_SCORES,
    _DDL_RANKING_ENTRIES,
]

ALL_TABLE_NAMES = [
    "validators",
    "commission_history",
    "validator_performance",
    "validator_historical_mev",
    "user_profiles",
    "user_favorites",
    "user_blacklist",
    "run_metadata",
    "score_snapshots",
    "validator_scores",
    "ranking_entries",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``.

    Idempotent: safe to call on an already-initialized database.

    Args:
        conn: An open ``sqlite3.Connection`` (FK enforcement should be ON).
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            if statement.strip():
                conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the table names present in the database, sorted."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
