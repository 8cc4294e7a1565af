"""Deterministic discount curves for the payment and foreign currencies."""

import datetime as dt
import warnings
from dataclasses import dataclass
from collections.abc import Sequence

import numpy as np

from .exceptions import ValidationError
from .utils import year_fractions


@dataclass(frozen=True, slots=True)
class DiscountCurve:
    """Discount factors on a time grid, interpolated log-linearly.

    Attributes
    ==========
    times:
        Year fractions from the curve's reference date, strictly increasing.
    dfs:
        Positive discount factors at ``times``, usually with ``dfs[0] == 1``.
        Factors above one (negative rates) are accepted with a warning.

    Methods
    =======
    df:
        discount factors for year fractions
    discount_dates:
        discount factors for calendar dates
    step_forward_rates:
        continuously compounded forward rate of every interval of a time grid
    """

    times: np.ndarray
    dfs: np.ndarray

    def __post_init__(self) -> None:
        t = np.asarray(self.times, dtype=float)
        df = np.asarray(self.dfs, dtype=float)
        if t.ndim != 1 or df.ndim != 1 or t.shape != df.shape:
            raise ValidationError("times and dfs must be 1D arrays of the same length")
        if t.size == 0:
            raise ValidationError("a discount curve needs at least one point")
        if np.any(np.diff(t) <= 0.0):
            raise ValidationError("times must be strictly increasing")
        if np.any(df <= 0.0) or not np.all(np.isfinite(df)):
            raise ValidationError("discount factors must be positive and finite")
        if np.any(df > 1.0 + 1e-12):
            warnings.warn("Discount factors > 1 detected (negative rates)", stacklevel=2)
        object.__setattr__(self, "times", t)
        object.__setattr__(self, "dfs", df)

    @classmethod
    def flat(cls, rate: float, end_time: float, steps: int = 1) -> "DiscountCurve":
        """Flat continuously compounded curve with ``steps`` intervals on ``[0, end_time]``."""
        if end_time <= 0.0:
            raise ValidationError("end_time must be positive")
        if steps < 1:
            raise ValidationError("steps must be >= 1")
        times = np.linspace(0.0, float(end_time), int(steps) + 1)
        return cls(times=times, dfs=np.exp(-float(rate) * times))

    @classmethod
    def from_zero_rates(cls, times: np.ndarray, zero_rates: np.ndarray) -> "DiscountCurve":
        """Build a curve from continuously compounded zero rates.

        Parameters
        ----------
        times
            Year fractions, strictly increasing and starting at 0.
        zero_rates
            Zero rate at each time.
        """
        times = np.asarray(times, dtype=float)
        zero_rates = np.asarray(zero_rates, dtype=float)
        if times.shape != zero_rates.shape or times.ndim != 1:
            raise ValidationError("times and zero_rates must be 1D arrays of the same length")
        if times.size < 2:
            raise ValidationError("times must include at least [0, T]")
        if not np.isclose(times[0], 0.0):
            raise ValidationError("times must start at 0.0")
        return cls(times=times, dfs=np.exp(-zero_rates * times))

    @classmethod
    def from_dates(
        cls,
        reference_date: dt.datetime,
        dates: Sequence[dt.datetime],
        dfs: Sequence[float],
    ) -> "DiscountCurve":
        """Build a curve from discount factors quoted for calendar dates.

        A point ``(reference_date, 1.0)`` is prepended if the first date is
        after the reference date.
        """
        times = year_fractions(reference_date, dates)
        values = np.asarray(dfs, dtype=float)
        if times.shape != values.shape:
            raise ValidationError("dates and dfs must have the same length")
        if times.size and times[0] < 0.0:
            raise ValidationError("dates must not precede the reference date")
        if times.size == 0 or times[0] > 0.0:
            times = np.concatenate([[0.0], times])
            values = np.concatenate([[1.0], values])
        return cls(times=times, dfs=values)

    def df(self, t: float | np.ndarray) -> np.ndarray:
        """Discount factors for year fractions *t*.

        Beyond either end of the curve the log discount factor continues with
        the forward rate of the outermost interval (a warning is issued).
        """
        t = np.asarray(t, dtype=float)
        t_min, t_max = float(self.times[0]), float(self.times[-1])
        log_df = np.log(self.dfs)
        outside = (t < t_min) | (t > t_max)
        if np.any(outside):
            warnings.warn(
                f"Extrapolating discount curve outside [{t_min:.4f}, {t_max:.4f}]",
                stacklevel=2,
            )
        out = np.interp(t, self.times, log_df)
        if self.times.size > 1 and np.any(outside):
            slope_left = (log_df[1] - log_df[0]) / (self.times[1] - self.times[0])
            slope_right = (log_df[-1] - log_df[-2]) / (self.times[-1] - self.times[-2])
            out = np.where(t < t_min, log_df[0] + slope_left * (t - t_min), out)
            out = np.where(t > t_max, log_df[-1] + slope_right * (t - t_max), out)
        return np.exp(out)

    def discount_dates(
        self, reference_date: dt.datetime, dates: Sequence[dt.datetime]
    ) -> np.ndarray:
        """Discount factors for calendar dates, times measured from *reference_date*."""
        return self.df(year_fractions(reference_date, dates))

    def step_forward_rates(self, grid: np.ndarray) -> np.ndarray:
        """Forward rate on each interval of *grid* (used as the GBM drift)."""
        grid = np.asarray(grid, dtype=float)
        if grid.ndim != 1 or grid.size < 2:
            raise ValidationError("grid must be a 1D array with at least two points")
        if np.any(np.diff(grid) <= 0.0):
            raise ValidationError("grid must be strictly increasing")
        log_df = np.log(self.df(grid))
        return -np.diff(log_df) / np.diff(grid)
