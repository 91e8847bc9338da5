"""
Validator scoring: feature vectors → sub-scores → composite score and grade.

Modules
-------
calculators : Five sub-score functions, weighted composite, confidence level
              and letter grade. Pure functions, no DB or I/O.
scorer      : score_validator() dispatch between the full path and the
              insufficient-data fallback; reweight() for alternate weights.
"""
