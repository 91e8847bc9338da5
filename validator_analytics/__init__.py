"""Validator Analytics: scoring, ranking, cohort statistics and delegation recommendations."""

__version__ = "0.1.0"
