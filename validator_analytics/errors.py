"""
Error taxonomy for validator scoring, ranking and recommendations.

Only ``StorageUnavailableError`` is ever expected to escape a scheduled
scoring cycle; the others are either resolved locally (insufficient data →
fallback score) or describe a caller mistake (``ValidationError``).
"""

from __future__ import annotations

from typing import Optional


class InsufficientDataError(RuntimeError):
    """Raised when a validator's epoch coverage is below the scoring minimum.

    The scorer resolves it with the conservative fallback score; it is never
    surfaced to API callers as a failure.

    Attributes:
        validator_id: Vote account of the under-covered validator.
        epochs_active: Epochs the validator has been active.
        minimum: Configured minimum epoch count.
    """

    def __init__(self, validator_id: str, epochs_active: int, minimum: int) -> None:
        self.validator_id  = validator_id
        self.epochs_active = epochs_active
        self.minimum       = minimum
        super().__init__(
            f"Validator '{validator_id}' has {epochs_active} active epochs; "
            f"at least {minimum} are required for a full score."
        )


class ValidationError(ValueError):
    """Raised for malformed caller input (weight vectors, counts, metric names)."""


class StorageUnavailableError(RuntimeError):
    """Raised when the storage collaborator fails.

    Scoring cycles abort on this error and keep serving the last published
    snapshot; the next scheduled cycle retries.

    Attributes:
        operation: Short description of what was being read or written.
        cause: The underlying driver exception, if any.
    """

    def __init__(self, operation: str, cause: Optional[BaseException] = None) -> None:
        self.operation = operation
        self.cause     = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Storage unavailable during {operation}{detail}")


class ComparisonUnderpoweredError(RuntimeError):
    """Raised when an underpowered cohort comparison is treated as reliable.

    Attributes:
        sample_sizes: Cohort label → sample size.
        minimum: Required minimum per cohort.
    """

    def __init__(self, sample_sizes: dict[str, int], minimum: int) -> None:
        self.sample_sizes = dict(sample_sizes)
        self.minimum      = minimum
        sizes = ", ".join(f"{k}={v}" for k, v in sorted(sample_sizes.items()))
        super().__init__(
            f"Insufficient sample size for cohort comparison ({sizes}); "
            f"each cohort needs at least {minimum} validators."
        )


class CacheCorruptionError(RuntimeError):
    """Raised when a cache entry does not hold the expected payload type."""

    def __init__(self, key: str, found_type: str) -> None:
        self.key        = key
        self.found_type = found_type
        super().__init__(f"Cache entry '{key}' holds unexpected type {found_type}.")


class CacheWaitTimeout(TimeoutError):
    """Raised when a caller stops waiting for an in-flight computation.

    The computation itself keeps running for the callers that still wait.
    """

    def __init__(self, key: str, timeout: float) -> None:
        self.key     = key
        self.timeout = timeout
        super().__init__(f"Gave up waiting {timeout:.1f}s for in-flight computation of '{key}'.")
