"""
Tests for validator_analytics/recommendations/diversification.py.

What we test
------------
commission_band():
  - Band labels, open top band, None -> "unknown".

suggest_diversification():
  - Empty top list -> no suggestions.
  - Too few picks -> validator_count (medium) with alternates outside top.
  - Same commission band -> commission_concentration (low).
  - Same category -> category_concentration (medium).
  - All MEV -> medium; no MEV -> high with MEV alternates.
  - Heavy stake share -> stake_concentration (high) with small alternates.
  - A balanced list of five -> no suggestions.
"""

from __future__ import annotations

from validator_analytics.config import RecommendationConfig
from validator_analytics.models.recommendation import RecommendedValidator
from validator_analytics.recommendations.diversification import (
    commission_band,
    suggest_diversification,
)

CONFIG = RecommendationConfig()
BANDS = CONFIG.commission_bands


# ── Helpers ───────────────────────────────────────────────────────────────────

def _rec(
    vid: str,
    rank: int = 1,
    commission: float = 5.0,
    mev: bool = True,
    category: str | None = None,
    stake: float = 1_000.0,
) -> RecommendedValidator:
    return RecommendedValidator(
        rank=rank,
        validator_id=vid,
        composite_score=80.0,
        adjusted_score=80.0,
        grade="A-",
        confidence_level=90.0,
        commission_rate=commission,
        stake_amount=stake,
        is_mev_enabled=mev,
        category=category,
    )


def _kinds(suggestions) -> dict:
    return {s.kind: s for s in suggestions}


class TestCommissionBand:
    def test_bands(self):
        assert commission_band(0.0, BANDS) == "0-5%"
        assert commission_band(5.0, BANDS) == "5-8%"
        assert commission_band(9.5, BANDS) == "8-10%"
        assert commission_band(100.0, BANDS) == "10-100%"

    def test_unknown(self):
        assert commission_band(None, BANDS) == "unknown"


class TestSuggestDiversification:
    def test_empty_top(self):
        assert suggest_diversification([], [_rec("a")], 1e6, CONFIG) == []

    def test_too_few_validators(self):
        top = [_rec("a", commission=3.0), _rec("b", commission=9.0, mev=False)]
        candidates = top + [_rec("c", 3), _rec("d", 4)]
        kinds = _kinds(suggest_diversification(top, candidates, 1e9, CONFIG))
        assert kinds["validator_count"].impact == "medium"
        assert kinds["validator_count"].alternates == ["c", "d"]

    def test_commission_concentration(self):
        top = [_rec(v, i + 1, commission=6.0, mev=(i % 2 == 0)) for i, v in enumerate("abcde")]
        candidates = top + [_rec("f", 6, commission=6.5), _rec("g", 7, commission=2.0)]
        kinds = _kinds(suggest_diversification(top, candidates, 1e9, CONFIG))
        suggestion = kinds["commission_concentration"]
        assert suggestion.impact == "low"
        assert suggestion.alternates == ["g"]
        assert "5-8%" in suggestion.message

    def test_category_concentration(self):
        top = [
            _rec("a", 1, commission=2.0, category="eu", mev=True),
            _rec("b", 2, commission=6.0, category="eu", mev=False),
            _rec("c", 3, commission=9.0, category="eu", mev=True),
        ]
        candidates = top + [_rec("d", 4, category="eu"), _rec("e", 5, category="us")]
        kinds = _kinds(suggest_diversification(top, candidates, 1e9, CONFIG))
        assert kinds["category_concentration"].impact == "medium"
        assert kinds["category_concentration"].alternates == ["e"]

    def test_uncategorized_ignored(self):
        top = [_rec("a", commission=2.0), _rec("b", commission=9.0, mev=False)]
        kinds = _kinds(suggest_diversification(top, top, 1e9, CONFIG))
        assert "category_concentration" not in kinds

    def test_all_mev(self):
        top = [_rec("a", commission=2.0), _rec("b", commission=9.0)]
        candidates = top + [_rec("c", mev=False)]
        kinds = _kinds(suggest_diversification(top, candidates, 1e9, CONFIG))
        assert kinds["mev_balance"].impact == "medium"
        assert kinds["mev_balance"].alternates == ["c"]

    def test_no_mev(self):
        top = [_rec("a", commission=2.0, mev=False), _rec("b", commission=9.0, mev=False)]
        candidates = top + [_rec("c", mev=False), _rec("d", mev=True)]
        kinds = _kinds(suggest_diversification(top, candidates, 1e9, CONFIG))
        assert kinds["mev_balance"].impact == "high"
        assert kinds["mev_balance"].alternates == ["d"]

    def test_stake_concentration(self):
        top = [_rec("whale", stake=500_000.0)]
        candidates = top + [_rec("big", stake=200_000.0), _rec("small", stake=50_000.0)]
        kinds = _kinds(suggest_diversification(top, candidates, 1_000_000.0, CONFIG))
        assert kinds["stake_concentration"].impact == "high"
        assert kinds["stake_concentration"].alternates == ["small"]
        assert "whale" in kinds["stake_concentration"].message

    def test_zero_total_stake_skips_stake_check(self):
        top = [_rec("a", stake=500_000.0)]
        kinds = _kinds(suggest_diversification(top, top, 0.0, CONFIG))
        assert "stake_concentration" not in kinds

    def test_balanced_list(self):
        top = [
            _rec("a", 1, commission=2.0, mev=True, category="eu"),
            _rec("b", 2, commission=6.0, mev=False, category="us"),
            _rec("c", 3, commission=9.0, mev=True, category="asia"),
            _rec("d", 4, commission=12.0, mev=False, category="eu"),
            _rec("e", 5, commission=4.0, mev=True, category="us"),
        ]
        assert suggest_diversification(top, top, 1e9, CONFIG) == []

    def test_alternates_capped(self):
        top = [_rec("a")]
        candidates = top + [_rec(f"alt-{i}", i + 2) for i in range(10)]
        kinds = _kinds(suggest_diversification(top, candidates, 1e9, CONFIG))
        assert len(kinds["validator_count"].alternates) == CONFIG.max_alternates
