"""Custom exception hierarchy for the tarf_analytics library.

All library-specific exceptions inherit from :class:`TarfAnalyticsError`,
enabling callers to catch *any* library error with a single ``except`` clause::

    try:
        result = TarfValuation(...).calculate()
    except TarfAnalyticsError as exc:
        log.error("Library error: %s", exc)
"""

from __future__ import annotations


class TarfAnalyticsError(Exception):
    """Base exception for all library errors."""


# ── Input validation ────────────────────────────────────────────────


class ValidationError(TarfAnalyticsError):
    """Invalid input values (out-of-range, non-finite, unsorted dates, etc.)."""


class ConfigurationError(TarfAnalyticsError):
    """Inconsistent engine configuration or wrong types passed to a public API.

    Raised for mutually exclusive settings (steps vs. steps per year, sample
    count vs. tolerance) and for a tolerance on a random source that cannot
    estimate its error.
    """


# ── Numerical issues ────────────────────────────────────────────────


class NumericalError(TarfAnalyticsError):
    """Base for errors arising from numerical computation."""


class DomainError(NumericalError):
    """Too few simulated points to regress a proxy segment.

    Raised by the proxy builder; more Monte Carlo samples usually resolve it.
    """

    def __init__(self, fixing_index: int, segment: str, size: int, required: int) -> None:
        self.fixing_index = fixing_index
        self.segment = segment
        self.size = size
        self.required = required
        super().__init__(
            f"too few points for regression in segment '{segment}' of fixing index "
            f"{fixing_index} ({size} < {required}); increase the number of samples"
        )


class ConvergenceError(NumericalError):
    """The Monte Carlo error estimate did not reach the tolerance within max_samples."""

    def __init__(self, error_estimate: float, tolerance: float, samples: int) -> None:
        self.error_estimate = error_estimate
        self.tolerance = tolerance
        self.samples = samples
        super().__init__(
            f"max number of samples ({samples}) reached, while error ({error_estimate:.6g}) "
            f"is still above tolerance ({tolerance:.6g})"
        )
