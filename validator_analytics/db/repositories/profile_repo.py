"""
Repository for user delegation profiles, favorites and blacklists.
"""

from __future__ import annotations

import json
from typing import Optional

from validator_analytics.db.repositories.base import BaseRepository
from validator_analytics.models.recommendation import UserDelegationProfile
from validator_analytics.utils.time_utils import parse_iso


class ProfileRepository(BaseRepository):
    """Read/write access to ``user_profiles``, ``user_favorites`` and ``user_blacklist``."""

    def upsert_profile(self, profile: UserDelegationProfile) -> None:
        """Insert or replace a profile, including its favorites and blacklist."""
        self.execute(
            """
            INSERT INTO user_profiles (user_id, strategy, risk_tolerance, custom_weights, updated_at)
            VALUES (?, ?, ?, ?, strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
            ON CONFLICT(user_id) DO UPDATE SET
                strategy       = excluded.strategy,
                risk_tolerance = excluded.risk_tolerance,
                custom_weights = excluded.custom_weights,
                updated_at     = excluded.updated_at;
            """,
            (
                profile.user_id,
                profile.strategy,
                profile.risk_tolerance,
                json.dumps(profile.custom_weights) if profile.custom_weights else None,
            ),
        )
        self.execute("DELETE FROM user_favorites WHERE user_id = ?;", (profile.user_id,))
        self.execute("DELETE FROM user_blacklist WHERE user_id = ?;", (profile.user_id,))
        for validator_id in sorted(profile.favorites):
            self.add_favorite(profile.user_id, validator_id)
        for validator_id in sorted(profile.blacklist):
            self.add_to_blacklist(profile.user_id, validator_id)

    def get_profile(self, user_id: str) -> Optional[UserDelegationProfile]:
        row = self.fetchone("SELECT * FROM user_profiles WHERE user_id = ?;", (user_id,))
        if row is None:
            return None
        return UserDelegationProfile(
            user_id=row["user_id"],
            strategy=row["strategy"],
            risk_tolerance=row["risk_tolerance"],
            custom_weights=json.loads(row["custom_weights"]) if row["custom_weights"] else None,
            favorites=frozenset(self.get_favorites(user_id)),
            blacklist=frozenset(self.get_blacklist(user_id)),
            updated_at=parse_iso(row["updated_at"]),
        )

    def get_favorites(self, user_id: str) -> list[str]:
        rows = self.fetchall(
            "SELECT validator_id FROM user_favorites WHERE user_id = ? ORDER BY validator_id;",
            (user_id,),
        )
        return [r["validator_id"] for r in rows]

    def get_blacklist(self, user_id: str) -> list[str]:
        rows = self.fetchall(
            "SELECT validator_id FROM user_blacklist WHERE user_id = ? ORDER BY validator_id;",
            (user_id,),
        )
        return [r["validator_id"] for r in rows]

    def add_favorite(self, user_id: str, validator_id: str) -> None:
        self.execute(
            "INSERT OR IGNORE INTO user_favorites (user_id, validator_id) VALUES (?, ?);",
            (user_id, validator_id),
        )

    def remove_favorite(self, user_id: str, validator_id: str) -> None:
        self.execute(
            "DELETE FROM user_favorites WHERE user_id = ? AND validator_id = ?;",
            (user_id, validator_id),
        )

    def add_to_blacklist(self, user_id: str, validator_id: str) -> None:
        self.execute(
            "INSERT OR IGNORE INTO user_blacklist (user_id, validator_id) VALUES (?, ?);",
            (user_id, validator_id),
        )

    def remove_from_blacklist(self, user_id: str, validator_id: str) -> None:
        self.execute(
            "DELETE FROM user_blacklist WHERE user_id = ? AND validator_id = ?;",
            (user_id, validator_id),
        )
