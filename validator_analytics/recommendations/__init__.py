"""
Personalized delegation recommendations.

Modules
-------
cache           : SingleFlightCache, a TTL cache that collapses concurrent
                  misses for one key into a single computation.
profiles        : resolve_preferences(), stored profile + call options →
                  effective weights, filters and risk tolerance.
diversification : suggest_diversification(), concentration checks with
                  alternates from under-represented bands.
store           : SnapshotStore, the read-side storage adapter.
engine          : RecommendationEngine, the request flow tying it together.
"""
