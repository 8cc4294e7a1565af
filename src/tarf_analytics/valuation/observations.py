"""Simulated (spot, value) observations for proxy estimation.

The store is organised as follows

* level 0: fixing index ``f = open fixings left - 1``; the observation taken at
  the first open fixing lives under the highest index, the one taken at the
  last fixing under index 0
* level 1: accumulated amount buckets
  ``[0, a(1)), [a(1), a(2)), ..., [a(n-1), target]``
* level 2: ``(n, 2)`` array of (spot, discounted value) rows, sorted ascending by spot
"""

from __future__ import annotations

from collections.abc import Sequence
import numpy as np

from ..exceptions import ValidationError

__all__ = ["bucket_limits", "bucket_index", "merge_sorted", "ObservationStore"]

_EMPTY = np.empty((0, 2), dtype=float)


def bucket_limits(accumulated_amount: float, target: float, n_buckets: int) -> np.ndarray:
    """Lower limits of ``n_buckets`` equally sized accumulated amount buckets.

    The buckets split ``[accumulated_amount, target]``; the first limit is set
    to zero so that no accumulated amount can fall below it.
    """
    if n_buckets < 1:
        raise ValidationError(f"n_buckets must be >= 1, got {n_buckets}")
    if target <= accumulated_amount:
        raise ValidationError(
            f"target ({target}) must exceed the accumulated amount ({accumulated_amount})"
        )
    limits = (
        np.arange(n_buckets, dtype=float) / n_buckets * (target - accumulated_amount)
        + accumulated_amount
    )
    limits[0] = 0.0
    return limits


def bucket_index(limits: np.ndarray, accumulated: np.ndarray | float) -> np.ndarray:
    """Index of the bucket containing each accumulated amount (last limit <= amount)."""
    idx = np.searchsorted(limits, accumulated, side="right") - 1
    return np.maximum(idx, 0)


def merge_sorted(left: np.ndarray, right: np.ndarray) -> np.ndarray:
    """Stable merge of two ``(n, 2)`` arrays sorted by their first column.

    Rows of *right* are placed after rows of *left* with an equal spot.
    """
    if right.shape[0] == 0:
        return left
    if left.shape[0] == 0:
        return right
    positions = np.searchsorted(left[:, 0], right[:, 0], side="right") + np.arange(
        right.shape[0]
    )
    out = np.empty((left.shape[0] + right.shape[0], 2), dtype=float)
    from_left = np.ones(out.shape[0], dtype=bool)
    from_left[positions] = False
    out[positions] = right
    out[from_left] = left
    return out


class ObservationStore:
    """Per (fixing index, bucket) datasets of simulated observations.

    Parameters
    ----------
    n_fixings : int
        Number of open fixings.
    limits : np.ndarray
        Bucket lower limits, see :func:`bucket_limits`.
    """

    def __init__(self, n_fixings: int, limits: np.ndarray) -> None:
        if n_fixings < 1:
            raise ValidationError(f"n_fixings must be >= 1, got {n_fixings}")
        self.n_fixings = n_fixings
        self.limits = np.asarray(limits, dtype=float)
        self.datasets: list[list[np.ndarray]] = [
            [_EMPTY for _ in range(self.limits.size)] for _ in range(n_fixings)
        ]

    @property
    def n_buckets(self) -> int:
        return self.limits.size

    def add(
        self,
        fixing_index: int,
        accumulated: np.ndarray,
        spots: np.ndarray,
        values: np.ndarray,
    ) -> None:
        """Bucket a vector of observations by accumulated amount and merge them in."""
        accumulated = np.asarray(accumulated, dtype=float)
        spots = np.asarray(spots, dtype=float)
        values = np.asarray(values, dtype=float)
        if not (accumulated.shape == spots.shape == values.shape):
            raise ValidationError("accumulated, spots and values must have the same shape")
        buckets = bucket_index(self.limits, accumulated)
        row = self.datasets[fixing_index]
        for b in np.unique(buckets):
            mask = buckets == b
            order = np.argsort(spots[mask], kind="stable")
            block = np.column_stack([spots[mask][order], values[mask][order]])
            row[b] = merge_sorted(row[b], block)

    def merge(self, other: "ObservationStore") -> None:
        """Reduction step: fold the datasets of *other* into this store."""
        if other.n_fixings != self.n_fixings or not np.array_equal(other.limits, self.limits):
            raise ValidationError("cannot merge observation stores of different layouts")
        for f in range(self.n_fixings):
            for b in range(self.n_buckets):
                self.datasets[f][b] = merge_sorted(self.datasets[f][b], other.datasets[f][b])

    def sizes(self, fixing_index: int) -> list[int]:
        return [d.shape[0] for d in self.datasets[fixing_index]]

    def total(self, fixing_index: int) -> int:
        return sum(self.sizes(fixing_index))

    def group(self, fixing_index: int, buckets: Sequence[int]) -> np.ndarray:
        """Stable merge of the datasets of *buckets* (still sorted by spot)."""
        merged = _EMPTY
        for b in buckets:
            merged = merge_sorted(merged, self.datasets[fixing_index][b])
        return merged
