"""Parameter classes for TARF Monte Carlo valuation and proxy generation.

Mutually exclusive settings are validated together when the parameter object
is built; an inconsistent combination raises ConfigurationError.
"""

from dataclasses import dataclass

from ..enums import RandomSourceType
from ..exceptions import ConfigurationError, ValidationError


@dataclass(frozen=True, slots=True)
class MonteCarloParams:
    """Parameters for Monte Carlo TARF valuation.

    Attributes
    ==========
    steps:
        Total number of time steps of the simulation grid (fixing times are
        always grid points). Exclusive with steps_per_year.
    steps_per_year:
        Time steps per year; the grid gets ``steps_per_year * t_last`` steps,
        at least one. Exclusive with steps.
    samples:
        Fixed number of samples (antithetic pairs count as one sample).
        Exclusive with absolute_tolerance.
    absolute_tolerance:
        Target standard error of the value. Requires a random source that
        supports error estimates. Exclusive with samples.
    max_samples:
        Upper bound on the number of samples in tolerance mode (None = no bound).
    min_samples:
        Size of the first batch in tolerance mode and of every later batch at least.
    seed:
        Random seed for reproducibility. If None, fresh entropy is used.
    antithetic_variate:
        Average each path with its mirror path.
    brownian_bridge:
        Build paths by Brownian bridge from the random draws.
    generate_proxy:
        Collect simulated (spot, value) observations and build a proxy surface.
    random_source:
        Built-in random source (pseudo-random or Sobol).
    block_size:
        Samples per work unit; partial results are reduced in block order.
    max_workers:
        Number of worker threads simulating blocks (1 = serial).
    log_timings:
        Log timing of the simulation and the proxy build at DEBUG level.
    """

    steps: int | None = None
    steps_per_year: int | None = None
    samples: int | None = None
    absolute_tolerance: float | None = None
    max_samples: int | None = None
    min_samples: int = 1023
    seed: int | None = None
    antithetic_variate: bool = False
    brownian_bridge: bool = False
    generate_proxy: bool = False
    random_source: RandomSourceType | str = RandomSourceType.PSEUDO
    block_size: int = 10_000
    max_workers: int = 1
    log_timings: bool = False

    def __post_init__(self):
        if isinstance(self.random_source, str):
            object.__setattr__(self, "random_source", RandomSourceType(self.random_source))
        if not isinstance(self.random_source, RandomSourceType):
            raise ConfigurationError(
                f"random_source must be a RandomSourceType, got {self.random_source}"
            )

        if self.steps is None and self.steps_per_year is None:
            raise ConfigurationError("no time steps provided: set steps or steps_per_year")
        if self.steps is not None and self.steps_per_year is not None:
            raise ConfigurationError("both steps and steps_per_year were provided")
        if self.steps is not None and self.steps < 1:
            raise ValidationError(f"steps must be >= 1, got {self.steps}")
        if self.steps_per_year is not None and self.steps_per_year < 1:
            raise ValidationError(f"steps_per_year must be >= 1, got {self.steps_per_year}")

        if self.samples is None and self.absolute_tolerance is None:
            raise ConfigurationError("neither samples nor absolute_tolerance given")
        if self.samples is not None and self.absolute_tolerance is not None:
            raise ConfigurationError("both samples and absolute_tolerance were provided")
        if self.samples is not None and self.samples < 1:
            raise ValidationError(f"samples must be >= 1, got {self.samples}")
        if self.absolute_tolerance is not None:
            if self.absolute_tolerance <= 0.0:
                raise ValidationError(
                    f"absolute_tolerance must be positive, got {self.absolute_tolerance}"
                )
            if self.random_source is RandomSourceType.SOBOL:
                raise ConfigurationError(
                    "chosen random source does not allow an error estimate; "
                    "absolute_tolerance requires a pseudo-random source"
                )

        if self.max_samples is not None and self.max_samples < 1:
            raise ValidationError(f"max_samples must be >= 1, got {self.max_samples}")
        if (
            self.samples is not None
            and self.max_samples is not None
            and self.samples > self.max_samples
        ):
            raise ConfigurationError(
                f"samples ({self.samples}) exceed max_samples ({self.max_samples})"
            )
        if self.min_samples < 1:
            raise ValidationError(f"min_samples must be >= 1, got {self.min_samples}")
        if self.absolute_tolerance is not None and self.min_samples < 2:
            raise ConfigurationError(
                f"min_samples must be >= 2 with absolute_tolerance, got {self.min_samples}; "
                "one sample gives no error estimate"
            )
        if self.block_size < 1:
            raise ValidationError(f"block_size must be >= 1, got {self.block_size}")
        if self.max_workers < 1:
            raise ValidationError(f"max_workers must be >= 1, got {self.max_workers}")


@dataclass(frozen=True, slots=True)
class ProxyParams:
    """Heuristics of the proxy surface builder.

    Attributes
    ==========
    n_buckets:
        Number of accumulated amount buckets between the accumulated amount and the target.
    density_factor:
        A merged bucket group must hold at least ``1 / density_factor`` of all
        points of its fixing index.
    rel_cutoff:
        Relative position of the cutoff between the two regression segments
        within ``[spot_min, spot_max]`` (``1 - rel_cutoff`` for put-like contracts).
    min_cutoff_ratio:
        Share of the nominal size of the smaller segment that must still be
        present; otherwise the cutoff moves towards the middle.
    cutoff_shrink_factor:
        Factor applied to the relative cutoff per adjustment step.
    min_lower_extrapolation:
        Percentile of the spots below (calls) / above (puts) which the
        proxy extrapolates linearly.
    core_cutoff:
        Percentile chopped off on both sides of the data to define the core region.
    min_regression_points:
        Minimum number of points per regression segment.
    """

    n_buckets: int = 5
    density_factor: int = 10
    rel_cutoff: float = 0.80
    min_cutoff_ratio: float = 0.33
    cutoff_shrink_factor: float = 0.99
    min_lower_extrapolation: float = 0.05
    core_cutoff: float = 0.01
    min_regression_points: int = 3

    def __post_init__(self):
        if self.n_buckets < 1:
            raise ValidationError(f"n_buckets must be >= 1, got {self.n_buckets}")
        if self.density_factor < 1:
            raise ValidationError(f"density_factor must be >= 1, got {self.density_factor}")
        if not (0.0 < self.rel_cutoff < 1.0):
            raise ValidationError(f"rel_cutoff must be in (0, 1), got {self.rel_cutoff}")
        if not (0.0 <= self.min_cutoff_ratio <= 1.0):
            raise ValidationError(
                f"min_cutoff_ratio must be in [0, 1], got {self.min_cutoff_ratio}"
            )
        if not (0.0 < self.cutoff_shrink_factor < 1.0):
            raise ValidationError(
                f"cutoff_shrink_factor must be in (0, 1), got {self.cutoff_shrink_factor}"
            )
        if not (0.0 <= self.min_lower_extrapolation < 1.0):
            raise ValidationError(
                f"min_lower_extrapolation must be in [0, 1), got {self.min_lower_extrapolation}"
            )
        if not (0.0 <= self.core_cutoff < 0.5):
            raise ValidationError(f"core_cutoff must be in [0, 0.5), got {self.core_cutoff}")
        if self.min_regression_points < 3:
            raise ValidationError(
                f"min_regression_points must be >= 3, got {self.min_regression_points}"
            )
