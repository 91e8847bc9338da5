"""
Read-side storage adapter for the recommendation engine.

The engine depends only on ``latest_scores`` and ``get_profile``; tests swap
in any object with the same two methods.
"""

from __future__ import annotations

from typing import Optional, Protocol

from validator_analytics.db.database import Database
from validator_analytics.db.repositories.profile_repo import ProfileRepository
from validator_analytics.db.repositories.snapshot_repo import ScoreSnapshotRepository
from validator_analytics.models.recommendation import UserDelegationProfile
from validator_analytics.models.score import CompositeScore


class RecommendationStore(Protocol):
    def latest_scores(self) -> tuple[Optional[int], list[CompositeScore]]: ...

    def get_profile(self, user_id: str) -> Optional[UserDelegationProfile]: ...


class SnapshotStore:
    """Reads the latest published score snapshot and user profiles."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def latest_scores(self) -> tuple[Optional[int], list[CompositeScore]]:
        """``(snapshot_id, scores)`` of the newest published snapshot, or ``(None, [])``."""
        with self.db.session("read latest scores") as conn:
            repo = ScoreSnapshotRepository(conn)
            snapshot_id = repo.get_latest_snapshot_id()
            if snapshot_id is None:
                return None, []
            return snapshot_id, repo.get_scores(snapshot_id)

    def get_profile(self, user_id: str) -> Optional[UserDelegationProfile]:
        with self.db.session("read user profile") as conn:
            return ProfileRepository(conn).get_profile(user_id)
