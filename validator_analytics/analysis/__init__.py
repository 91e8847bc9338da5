"""
Cohort statistics.

Modules
-------
stats       Mean, population variance, volatility, Pearson correlation, Welch t-test.
comparison  perform_comparison(): two-cohort contrast with sample-size guard.
"""
