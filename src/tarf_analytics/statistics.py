"""Sample statistics accumulated over Monte Carlo batches."""

from __future__ import annotations

from typing import Protocol
import numpy as np

__all__ = ["SampleAccumulator", "RunningStatistics"]


class SampleAccumulator(Protocol):
    samples: int

    def add(self, values: np.ndarray) -> None: ...

    def merge(self, other: "SampleAccumulator") -> None: ...

    @property
    def mean(self) -> float: ...

    @property
    def error_estimate(self) -> float: ...


class RunningStatistics:
    """Mean and variance of a stream of samples, mergeable across workers.

    Batches are combined with Chan et al.'s pairwise update, so adding the
    same batches in the same order always gives bit-identical moments.
    """

    def __init__(self) -> None:
        self.samples = 0
        self._mean = 0.0
        self._m2 = 0.0

    def add(self, values: np.ndarray) -> None:
        """Add a batch of sample values."""
        values = np.asarray(values, dtype=float).ravel()
        if values.size == 0:
            return
        batch_mean = float(np.mean(values))
        batch_m2 = float(np.sum((values - batch_mean) ** 2))
        self._combine(values.size, batch_mean, batch_m2)

    def merge(self, other: "RunningStatistics") -> None:
        """Fold the moments of *other* into this accumulator."""
        if other.samples == 0:
            return
        self._combine(other.samples, other._mean, other._m2)

    def _combine(self, n_b: int, mean_b: float, m2_b: float) -> None:
        n_a = self.samples
        n = n_a + n_b
        delta = mean_b - self._mean
        self._mean += delta * n_b / n
        self._m2 += m2_b + delta * delta * n_a * n_b / n
        self.samples = n

    @property
    def mean(self) -> float:
        return self._mean

    @property
    def variance(self) -> float:
        """Unbiased sample variance (nan for fewer than two samples)."""
        if self.samples < 2:
            return float("nan")
        return self._m2 / (self.samples - 1)

    @property
    def error_estimate(self) -> float:
        """Standard error of the mean, ``sqrt(variance / samples)``.

        Infinite for fewer than two samples: no estimate is available, and no
        tolerance can be met.
        """
        if self.samples < 2:
            return float("inf")
        return float(np.sqrt(self.variance / self.samples))
