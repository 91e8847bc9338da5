"""
Repository for validator master records and their histories.

Four query families back the data gatherer:
  - master records (``validators``)
  - commission history (``commission_history``), one row per epoch
  - per-epoch performance (``validator_performance``)
  - historical MEV aggregates (``validator_historical_mev``)

History queries accept an optional inclusive epoch window. When both bounds
are ``None`` they return the latest ``limit`` epochs instead. Results are
always returned in ascending epoch order.
"""

from __future__ import annotations

from typing import Optional

from validator_analytics.db.repositories.base import BaseRepository
from validator_analytics.models.validator import (
    CommissionRecord,
    EpochPerformance,
    MevAggregate,
    ValidatorRecord,
)


def _window_clause(
    start_epoch: Optional[int], end_epoch: Optional[int]
) -> tuple[str, list]:
    clauses, params = [], []
    if start_epoch is not None:
        clauses.append("AND epoch_number >= ?")
        params.append(start_epoch)
    if end_epoch is not None:
        clauses.append("AND epoch_number <= ?")
        params.append(end_epoch)
    return " ".join(clauses), params


class ValidatorRepository(BaseRepository):
    """Read/write access to validator records and histories."""

    # ── Master records ─────────────────────────────────────────────────────────

    def upsert_validator(self, record: ValidatorRecord) -> None:
        self.execute(
            """
            INSERT INTO validators (
                vote_account, name, commission_rate, epochs_active, stake_amount,
                uptime_percentage, is_mev_enabled, category, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
            ON CONFLICT(vote_account) DO UPDATE SET
                name              = excluded.name,
                commission_rate   = excluded.commission_rate,
                epochs_active     = excluded.epochs_active,
                stake_amount      = excluded.stake_amount,
                uptime_percentage = excluded.uptime_percentage,
                is_mev_enabled    = excluded.is_mev_enabled,
                category          = excluded.category,
                updated_at        = excluded.updated_at;
            """,
            (
                record.vote_account,
                record.name,
                record.commission_rate,
                record.epochs_active,
                record.stake_amount,
                record.uptime_percentage,
                int(record.is_mev_enabled),
                record.category,
            ),
        )

    def get_validator(self, vote_account: str) -> Optional[ValidatorRecord]:
        row = self.fetchone(
            "SELECT * FROM validators WHERE vote_account = ?;", (vote_account,)
        )
        return _row_to_validator(row) if row else None

    def list_validator_ids(self) -> list[str]:
        rows = self.fetchall("SELECT vote_account FROM validators ORDER BY vote_account;")
        return [row["vote_account"] for row in rows]

    def list_validators(self) -> list[ValidatorRecord]:
        rows = self.fetchall("SELECT * FROM validators ORDER BY vote_account;")
        return [_row_to_validator(r) for r in rows]

    def total_stake(self) -> float:
        value = self.fetchvalue("SELECT COALESCE(SUM(stake_amount), 0) FROM validators;")
        return float(value or 0.0)

    def get_market_commissions(self, min_epochs: int) -> list[float]:
        """Current commission rates of validators active for at least ``min_epochs``."""
        rows = self.fetchall(
            """
            SELECT commission_rate FROM validators
            WHERE epochs_active >= ?
            ORDER BY commission_rate;
            """,
            (min_epochs,),
        )
        return [float(r["commission_rate"]) for r in rows]

    # ── Commission history ─────────────────────────────────────────────────────

    def insert_commission_records(
        self,
        records: list[CommissionRecord],
        recorded_at: Optional[list[Optional[str]]] = None,
    ) -> int:
        """Insert or replace commission observations. Returns rows written.

        Args:
            records: Observations to write.
            recorded_at: Optional ISO timestamps aligned with ``records``;
                ``None`` entries default to now.
        """
        stamps = recorded_at or [None] * len(records)
        self.executemany(
            """
            INSERT INTO commission_history (validator_id, epoch_number, commission_rate, recorded_at)
            VALUES (?, ?, ?, COALESCE(?, strftime('%Y-%m-%dT%H:%M:%SZ', 'now')))
            ON CONFLICT(validator_id, epoch_number) DO UPDATE SET
                commission_rate = excluded.commission_rate,
                recorded_at     = excluded.recorded_at;
            """,
            [
                (r.validator_id, r.epoch_number, r.commission_rate, stamp)
                for r, stamp in zip(records, stamps)
            ],
        )
        return len(records)

    def get_commission_history(
        self,
        validator_id: str,
        start_epoch: Optional[int] = None,
        end_epoch: Optional[int] = None,
        limit: int = 100,
    ) -> list[CommissionRecord]:
        window, params = _window_clause(start_epoch, end_epoch)
        sql = f"""
            SELECT validator_id, epoch_number, commission_rate
            FROM commission_history
            WHERE validator_id = ? {window}
            ORDER BY epoch_number DESC
        """
        args: list = [validator_id, *params]
        if start_epoch is None and end_epoch is None:
            sql += " LIMIT ?"
            args.append(limit)
        rows = self.fetchall(sql + ";", tuple(args))
        return [
            CommissionRecord(
                validator_id=r["validator_id"],
                epoch_number=r["epoch_number"],
                commission_rate=r["commission_rate"],
            )
            for r in reversed(rows)
        ]

    def get_monthly_commission_trend(
        self, validator_id: str, months: int = 6
    ) -> list[tuple[str, float, int]]:
        """Latest ``months`` calendar-month buckets as ``(month, avg_commission, points)``.

        Buckets are returned oldest first.
        """
        rows = self.fetchall(
            """
            SELECT strftime('%Y-%m', recorded_at) AS month,
                   AVG(commission_rate)           AS avg_commission,
                   COUNT(*)                       AS data_points
            FROM commission_history
            WHERE validator_id = ?
            GROUP BY month
            ORDER BY month DESC
            LIMIT ?;
            """,
            (validator_id, months),
        )
        return [
            (r["month"], float(r["avg_commission"]), int(r["data_points"]))
            for r in reversed(rows)
        ]

    # ── Performance history ────────────────────────────────────────────────────

    def insert_performance_records(self, records: list[EpochPerformance]) -> int:
        self.executemany(
            """
            INSERT INTO validator_performance (
                validator_id, epoch_number, epoch_rewards, uptime, vote_credits, stake_amount
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(validator_id, epoch_number) DO UPDATE SET
                epoch_rewards = excluded.epoch_rewards,
                uptime        = excluded.uptime,
                vote_credits  = excluded.vote_credits,
                stake_amount  = excluded.stake_amount;
            """,
            [
                (
                    r.validator_id, r.epoch_number, r.epoch_rewards,
                    r.uptime, r.vote_credits, r.stake_amount,
                )
                for r in records
            ],
        )
        return len(records)

    def get_performance_history(
        self,
        validator_id: str,
        start_epoch: Optional[int] = None,
        end_epoch: Optional[int] = None,
        limit: int = 50,
    ) -> list[EpochPerformance]:
        window, params = _window_clause(start_epoch, end_epoch)
        sql = f"""
            SELECT * FROM validator_performance
            WHERE validator_id = ? {window}
            ORDER BY epoch_number DESC
        """
        args: list = [validator_id, *params]
        if start_epoch is None and end_epoch is None:
            sql += " LIMIT ?"
            args.append(limit)
        rows = self.fetchall(sql + ";", tuple(args))
        return [
            EpochPerformance(
                validator_id=r["validator_id"],
                epoch_number=r["epoch_number"],
                epoch_rewards=r["epoch_rewards"],
                uptime=r["uptime"],
                vote_credits=r["vote_credits"],
                stake_amount=r["stake_amount"],
            )
            for r in reversed(rows)
        ]

    # ── MEV aggregates ─────────────────────────────────────────────────────────

    def upsert_mev_aggregate(self, aggregate: MevAggregate) -> None:
        self.execute(
            """
            INSERT INTO validator_historical_mev (
                validator_id, total_mev_rewards, avg_daily_mev, mev_consistency,
                epochs_covered, updated_at
            ) VALUES (?, ?, ?, ?, ?, strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
            ON CONFLICT(validator_id) DO UPDATE SET
                total_mev_rewards = excluded.total_mev_rewards,
                avg_daily_mev     = excluded.avg_daily_mev,
                mev_consistency   = excluded.mev_consistency,
                epochs_covered    = excluded.epochs_covered,
                updated_at        = excluded.updated_at;
            """,
            (
                aggregate.validator_id,
                aggregate.total_mev_rewards,
                aggregate.avg_daily_mev,
                aggregate.mev_consistency,
                aggregate.epochs_covered,
            ),
        )

    def get_mev_aggregate(self, validator_id: str) -> Optional[MevAggregate]:
        row = self.fetchone(
            "SELECT * FROM validator_historical_mev WHERE validator_id = ?;",
            (validator_id,),
        )
        if row is None:
            return None
        return MevAggregate(
            validator_id=row["validator_id"],
            total_mev_rewards=row["total_mev_rewards"],
            avg_daily_mev=row["avg_daily_mev"],
            mev_consistency=row["mev_consistency"],
            epochs_covered=row["epochs_covered"],
        )


def _row_to_validator(row) -> ValidatorRecord:
    return ValidatorRecord(
        vote_account=row["vote_account"],
        name=row["name"],
        commission_rate=row["commission_rate"],
        epochs_active=row["epochs_active"],
        stake_amount=row["stake_amount"],
        uptime_percentage=row["uptime_percentage"],
        is_mev_enabled=bool(row["is_mev_enabled"]),
        category=row["category"],
    )
