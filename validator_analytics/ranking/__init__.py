"""
Ranking system.

Modules
-------
normalize  Metric-specific bounded / logistic transforms onto [0, 1].
ranker     Total-order rankings, category rankings and read-side filters.
"""
