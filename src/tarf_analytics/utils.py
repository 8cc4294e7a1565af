"""Helper functions for TARF simulation and valuation."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from collections.abc import Iterator, Sequence
import time
import numpy as np

from .enums import DayCountConvention
from .exceptions import ValidationError

__all__ = [
    "log_timing",
    "calculate_year_fraction",
    "year_fractions",
    "build_time_grid",
]

SECONDS_IN_DAY = 86400


@contextmanager
def log_timing(logger, label: str, enabled: bool) -> Iterator[None]:
    """Log timing for a code block when enabled is True."""
    if not enabled:
        yield
        return
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        logger.debug("Timing %s: %.6fs", label, elapsed)


def _day_count_30_360_us(start_date: datetime, end_date: datetime) -> float:
    """30/360 (US) day-count fraction between two dates."""
    y1, m1, d1 = start_date.year, start_date.month, start_date.day
    y2, m2, d2 = end_date.year, end_date.month, end_date.day

    if d1 == 31:
        d1 = 30
    if d2 == 31 and d1 in (30, 31):
        d2 = 30

    return (360 * (y2 - y1) + 30 * (m2 - m1) + (d2 - d1)) / 360.0


def calculate_year_fraction(
    start_date,
    end_date,
    day_count_convention: DayCountConvention = DayCountConvention.ACT_365F,
) -> float:
    """Calculate year fraction between two dates.

    Parameters
    ==========
    start_date: datetime
        starting date
    end_date: datetime
        ending date
    day_count_convention: DayCountConvention, default DayCountConvention.ACT_365F
        Day-count basis. Supported:
        - DayCountConvention.ACT_365F
        - DayCountConvention.ACT_360
        - DayCountConvention.ACT_365_25
        - DayCountConvention.THIRTY_360_US

    Returns
    =======
    year_fraction: float
        year fraction between start_date and end_date
    """
    if day_count_convention is DayCountConvention.THIRTY_360_US:
        return _day_count_30_360_us(start_date, end_date)
    if day_count_convention is DayCountConvention.ACT_360:
        denom = 360.0
    elif day_count_convention is DayCountConvention.ACT_365_25:
        denom = 365.25
    elif day_count_convention is DayCountConvention.ACT_365F:
        denom = 365.0
    else:
        raise ValidationError(f"Unsupported day_count_convention: {day_count_convention}")

    delta_days = (end_date - start_date).total_seconds() / SECONDS_IN_DAY
    return delta_days / denom


def year_fractions(reference_date: datetime, dates: Sequence[datetime]) -> np.ndarray:
    """ACT/365F year fractions of *dates* measured from *reference_date*."""
    return np.array([calculate_year_fraction(reference_date, d) for d in dates], dtype=float)


def build_time_grid(mandatory_times: Sequence[float], steps: int) -> np.ndarray:
    """Build a simulation time grid starting at 0 that contains every mandatory time.

    The grid aims at ``steps`` equally sized steps over ``[0, max(mandatory_times)]``;
    every interval between two consecutive mandatory times gets the nearest
    whole number of steps, but never less than one.

    Parameters
    ----------
    mandatory_times
        Positive times (year fractions) that must be grid points, e.g. fixing times.
    steps
        Requested total number of steps (>= 1).

    Returns
    -------
    np.ndarray
        Strictly increasing grid, first element 0.0.
    """
    if steps < 1:
        raise ValidationError(f"steps must be >= 1, got {steps}")
    mandatory = np.unique(np.asarray(mandatory_times, dtype=float))
    if mandatory.size == 0:
        raise ValidationError("at least one mandatory time is required")
    if mandatory[0] < 0.0:
        raise ValidationError("mandatory times must be non-negative")
    mandatory = mandatory[mandatory > 0.0]
    if mandatory.size == 0:
        return np.array([0.0])

    dt_max = mandatory[-1] / steps
    times = [0.0]
    period_begin = 0.0
    for period_end in mandatory:
        n_steps = max(int(round((period_end - period_begin) / dt_max)), 1)
        dt = (period_end - period_begin) / n_steps
        times.extend(period_begin + n * dt for n in range(1, n_steps))
        times.append(float(period_end))
        period_begin = float(period_end)
    return np.array(times, dtype=float)
