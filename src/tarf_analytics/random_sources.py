"""Random number sources and Brownian bridge construction for path generation.

A random source hands out standard normal draws for a block of samples
identified by its global ``offset``; the same offset always yields the same
draws, so the result of a simulation does not depend on how blocks are
distributed over workers.
"""

from __future__ import annotations

from typing import Protocol
import numpy as np
from scipy.stats import norm, qmc

from .enums import RandomSourceType
from .exceptions import ConfigurationError, ValidationError

__all__ = [
    "RandomSource",
    "PseudoRandomSource",
    "SobolRandomSource",
    "BrownianBridge",
    "make_random_source",
]


class RandomSource(Protocol):
    allows_error_estimate: bool

    def normals(self, offset: int, n_paths: int, dimension: int) -> np.ndarray:
        """Return standard normals of shape ``(dimension, n_paths)`` for samples
        ``offset, ..., offset + n_paths - 1``."""
        ...


class PseudoRandomSource:
    """Pseudo-random normals from numpy's default bit generator.

    Each block gets its own stream derived from ``SeedSequence(seed, spawn_key=(offset,))``.
    """

    allows_error_estimate = True

    def __init__(self, seed: int | None = None) -> None:
        # Fix the entropy once so that a None seed is still reproducible within one run.
        self._entropy = np.random.SeedSequence(seed).entropy

    def normals(self, offset: int, n_paths: int, dimension: int) -> np.ndarray:
        seq = np.random.SeedSequence(self._entropy, spawn_key=(int(offset),))
        rng = np.random.default_rng(seq)
        return rng.standard_normal((dimension, n_paths))


class SobolRandomSource:
    """Scrambled Sobol low-discrepancy normals (inverse-CDF mapping).

    Quasi-random draws give no statistically meaningful error estimate.
    """

    allows_error_estimate = False

    def __init__(self, seed: int | None = None) -> None:
        # Every block must see the same scrambling, also for a None seed.
        self._entropy = np.random.SeedSequence(seed).entropy

    def normals(self, offset: int, n_paths: int, dimension: int) -> np.ndarray:
        if dimension <= 0:
            raise ValidationError("Sobol dimension must be positive.")
        sampler = qmc.Sobol(
            d=dimension, scramble=True, seed=np.random.default_rng(self._entropy)
        )
        if offset:
            sampler.fast_forward(int(offset))
        uniforms = sampler.random(n_paths)
        eps = np.finfo(float).tiny
        return norm.ppf(np.clip(uniforms, eps, 1.0 - eps)).T


def make_random_source(kind: RandomSourceType, seed: int | None) -> RandomSource:
    """Create the built-in random source for *kind*."""
    if kind is RandomSourceType.PSEUDO:
        return PseudoRandomSource(seed)
    if kind is RandomSourceType.SOBOL:
        return SobolRandomSource(seed)
    raise ConfigurationError(f"Unsupported random source: {kind}")


class BrownianBridge:
    """Brownian bridge ordering of normal draws on a time grid.

    The first draw determines the terminal value of the Brownian motion, the
    second the midpoint, and so on; low-discrepancy sequences put their best
    dimensions where the variance is largest.

    Parameters
    ----------
    times : np.ndarray
        Strictly increasing positive times ``t_1 < ... < t_n`` (the grid without 0).
    """

    def __init__(self, times: np.ndarray) -> None:
        t = np.asarray(times, dtype=float)
        if t.ndim != 1 or t.size == 0:
            raise ValidationError("times must be a non-empty 1-D array")
        if t[0] <= 0.0 or np.any(np.diff(t) <= 0.0):
            raise ValidationError("times must be positive and strictly increasing")
        size = t.size
        self._size = size
        self._sqrtdt = np.sqrt(np.diff(np.concatenate([[0.0], t])))

        self._bridge_index = np.zeros(size, dtype=int)
        self._left_index = np.zeros(size, dtype=int)
        self._right_index = np.zeros(size, dtype=int)
        self._left_weight = np.zeros(size)
        self._right_weight = np.zeros(size)
        self._std_dev = np.zeros(size)

        # point_map[k] != 0 once the value at time index k has been assigned
        point_map = np.zeros(size, dtype=int)
        point_map[-1] = 1
        self._bridge_index[0] = size - 1
        self._std_dev[0] = np.sqrt(t[-1])

        j = 0
        for i in range(1, size):
            while point_map[j]:
                j += 1
            k = j
            while not point_map[k]:
                k += 1
            l = j + ((k - 1 - j) >> 1)
            point_map[l] = i
            self._bridge_index[i] = l
            self._left_index[i] = j
            self._right_index[i] = k
            if j != 0:
                span = t[k] - t[j - 1]
                self._left_weight[i] = (t[k] - t[l]) / span
                self._right_weight[i] = (t[l] - t[j - 1]) / span
                self._std_dev[i] = np.sqrt((t[l] - t[j - 1]) * (t[k] - t[l]) / span)
            else:
                self._left_weight[i] = (t[k] - t[l]) / t[k]
                self._right_weight[i] = t[l] / t[k]
                self._std_dev[i] = np.sqrt(t[l] * (t[k] - t[l]) / t[k])
            j = k + 1
            if j >= size:
                j = 0

    def transform(self, normals: np.ndarray) -> np.ndarray:
        """Map draws of shape ``(n, n_paths)`` to normalised Brownian increments.

        The output has the same shape; row ``i`` is ``dW_i / sqrt(dt_i)`` and is
        again standard normal.
        """
        z = np.asarray(normals, dtype=float)
        if z.shape[0] != self._size:
            raise ValidationError(f"expected {self._size} rows of normals, got {z.shape[0]}")
        w = np.empty_like(z)
        w[self._size - 1] = self._std_dev[0] * z[0]
        for i in range(1, self._size):
            j = self._left_index[i]
            k = self._right_index[i]
            l = self._bridge_index[i]
            if j != 0:
                w[l] = (
                    self._left_weight[i] * w[j - 1]
                    + self._right_weight[i] * w[k]
                    + self._std_dev[i] * z[i]
                )
            else:
                w[l] = self._right_weight[i] * w[k] + self._std_dev[i] * z[i]
        increments = np.diff(w, axis=0, prepend=np.zeros((1,) + w.shape[1:]))
        return increments / self._sqrtdt.reshape((-1,) + (1,) * (w.ndim - 1))
