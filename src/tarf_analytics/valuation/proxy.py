"""Piecewise quadratic proxy functions and the proxy surface of a TARF.

A proxy function approximates the value of the contract (forward to its last
payment date) as a function of spot, for a fixed number of open fixings and a
fixed accumulated amount bucket. It consists of two quadratics joined at a
cutoff. Evaluation

* clamps each quadratic at its vertex, so that it extrapolates flat instead of
  turning back,
* extrapolates linearly beyond a lower cutoff on the out-of-the-money side,
* takes the max with the other segment's value at the cutoff, so that the
  result is ascending for call-like and descending for put-like contracts.
"""

from __future__ import annotations

from dataclasses import dataclass
import datetime as dt
import numpy as np

from ..enums import OptionType
from ..exceptions import ValidationError
from ..market_environment import MarketData
from .observations import bucket_index


@dataclass(frozen=True, slots=True)
class QuadraticSegment:
    """Quadratic ``a x^2 + b x + c`` fitted on one side of a cutoff."""

    a: float
    b: float
    c: float

    def __call__(self, x):
        return (self.a * x + self.b) * x + self.c

    def slope(self, x):
        return 2.0 * self.a * x + self.b

    @property
    def vertex(self) -> float | None:
        if self.a == 0.0:
            return None
        return -self.b / (2.0 * self.a)

    def flat_direction(self, option_type: OptionType) -> int:
        """+1 if the segment is flat right of its vertex, -1 if left, 0 if no vertex."""
        if self.a == 0.0:
            return 0
        sign = 1 if option_type is OptionType.CALL else -1
        return sign * (-1 if self.a > 0.0 else 1)

    def clamp(self, x, option_type: OptionType):
        """Move *x* back to the vertex if it lies on the flat side of it."""
        direction = self.flat_direction(option_type)
        if direction == 0:
            return x
        return direction * np.minimum(direction * self.vertex, direction * x)

    def clamped(self, x, option_type: OptionType):
        return self(self.clamp(x, option_type))


@dataclass(frozen=True, slots=True)
class QuadraticProxyFunction:
    """Immutable two segment proxy function.

    Attributes
    ==========
    option_type:
        CALL for ascending, PUT for descending value in spot.
    cutoff:
        Spots ``<= cutoff`` are evaluated on ``below``, the others on ``above``.
    lower_cutoff:
        Linear extrapolation below (calls) or above (puts) this spot.
    core_region_min, core_region_max:
        Spot range in which the regression data is considered reliable. Not
        used by the evaluation.
    below, above:
        The two fitted segments.
    """

    option_type: OptionType
    cutoff: float
    lower_cutoff: float
    core_region_min: float
    core_region_max: float
    below: QuadraticSegment
    above: QuadraticSegment

    def __post_init__(self) -> None:
        if self.option_type is OptionType.CALL and self.lower_cutoff > self.cutoff:
            raise ValidationError(
                f"lower_cutoff ({self.lower_cutoff}) must not exceed cutoff ({self.cutoff}) "
                "for a call-like proxy"
            )
        if self.option_type is OptionType.PUT and self.lower_cutoff < self.cutoff:
            raise ValidationError(
                f"lower_cutoff ({self.lower_cutoff}) must not be below cutoff ({self.cutoff}) "
                "for a put-like proxy"
            )
        if self.core_region_min > self.core_region_max:
            raise ValidationError("core_region_min must not exceed core_region_max")
        # a linear segment has no vertex to clamp at, so it must already be monotone
        sign = 1.0 if self.option_type is OptionType.CALL else -1.0
        for name, segment in (("below", self.below), ("above", self.above)):
            if segment.a == 0.0 and sign * segment.b < 0.0:
                raise ValidationError(
                    f"linear segment '{name}' has slope {segment.b}, which must be "
                    f"{'>=' if sign > 0 else '<='} 0 for a {self.option_type.value}-like proxy"
                )

    @classmethod
    def constant(
        cls,
        option_type: OptionType,
        value: float,
        spot_min: float,
        spot_max: float,
    ) -> "QuadraticProxyFunction":
        """Constant proxy used when the spots of a group collapse to one point."""
        segment = QuadraticSegment(0.0, 0.0, float(value))
        lower = -np.inf if option_type is OptionType.CALL else np.inf
        return cls(
            option_type=option_type,
            cutoff=float(spot_min),
            lower_cutoff=lower,
            core_region_min=float(spot_min),
            core_region_max=float(spot_max),
            below=segment,
            above=segment,
        )

    @property
    def is_constant(self) -> bool:
        return all(s.a == 0.0 and s.b == 0.0 for s in (self.below, self.above)) and (
            self.below.c == self.above.c
        )

    @property
    def core_region(self) -> tuple[float, float]:
        return self.core_region_min, self.core_region_max

    def _linear(self, segment: QuadraticSegment, x):
        # anchored at the lower cutoff, slope taken at the clamped point
        anchor = segment.clamp(self.lower_cutoff, self.option_type)
        return segment(anchor) + segment.slope(anchor) * (x - self.lower_cutoff)

    def __call__(self, spot):
        x = np.asarray(spot, dtype=float)
        kind = self.option_type
        y_below = self.below.clamped(x, kind)
        y_above = self.above.clamped(x, kind)

        if kind is OptionType.CALL:
            if self.below.flat_direction(kind) == 1:
                y_below = np.where(
                    x <= self.lower_cutoff, self._linear(self.below, x), y_below
                )
            y_above = np.maximum(y_above, self.below.clamped(self.cutoff, kind))
        else:
            if self.above.flat_direction(kind) == -1:
                y_above = np.where(
                    x >= self.lower_cutoff, self._linear(self.above, x), y_above
                )
            y_below = np.maximum(y_below, self.above.clamped(self.cutoff, kind))

        y = np.where(x <= self.cutoff, y_below, y_above)
        if y.ndim == 0:
            return float(y)
        return y


@dataclass(frozen=True, slots=True, eq=False)
class ProxySurface:
    """Proxy functions of a TARF indexed by open fixings and accumulated amount.

    ``functions[f][b]`` is the proxy for ``f + 1`` open fixings and the
    accumulated amount bucket ``b``. Buckets merged during the build reference
    the same function instance.
    """

    origin_date: dt.datetime
    open_fixing_dates: tuple[dt.datetime, ...]
    bucket_limits: np.ndarray
    last_payment_date: dt.datetime
    functions: tuple[tuple[QuadraticProxyFunction, ...], ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "open_fixing_dates", tuple(self.open_fixing_dates))
        object.__setattr__(self, "functions", tuple(tuple(row) for row in self.functions))
        limits = np.array(self.bucket_limits, dtype=float)
        limits.setflags(write=False)
        object.__setattr__(self, "bucket_limits", limits)
        if len(self.functions) != len(self.open_fixing_dates):
            raise ValidationError(
                f"expected {len(self.open_fixing_dates)} fixing indices, "
                f"got {len(self.functions)}"
            )
        if any(len(row) != limits.size for row in self.functions):
            raise ValidationError("every fixing index needs one function per bucket")

    @property
    def n_fixings(self) -> int:
        return len(self.open_fixing_dates)

    @property
    def n_buckets(self) -> int:
        return self.bucket_limits.size

    def function(self, fixing_index: int, accumulated_amount: float) -> QuadraticProxyFunction:
        if not 0 <= fixing_index < self.n_fixings:
            raise ValidationError(
                f"fixing_index must be in [0, {self.n_fixings - 1}], got {fixing_index}"
            )
        if accumulated_amount < 0.0:
            raise ValidationError(
                f"accumulated_amount must be >= 0, got {accumulated_amount}"
            )
        bucket = int(bucket_index(self.bucket_limits, accumulated_amount))
        return self.functions[fixing_index][bucket]

    def evaluate(self, fixing_index: int, accumulated_amount: float, spot):
        """Proxy value forward to the last payment date."""
        return self.function(fixing_index, accumulated_amount)(spot)

    def fixing_index_for(self, evaluation_date: dt.datetime) -> int:
        """Fixing index matching the fixings still open after *evaluation_date*."""
        if evaluation_date < self.origin_date:
            raise ValidationError(
                f"evaluation date {evaluation_date} precedes the proxy origin {self.origin_date}"
            )
        n_open = sum(1 for d in self.open_fixing_dates if d > evaluation_date)
        if n_open == 0:
            raise ValidationError(f"no open fixings left after {evaluation_date}")
        return n_open - 1

    def present_value(self, market_data: MarketData, accumulated_amount: float, spot):
        """Proxy value discounted from the last payment date to the pricing date."""
        fixing_index = self.fixing_index_for(market_data.pricing_date)
        df = market_data.discount(self.last_payment_date)
        return self.evaluate(fixing_index, accumulated_amount, spot) * df

    def distinct_functions(self, fixing_index: int) -> list[QuadraticProxyFunction]:
        """Distinct function instances of a fixing index, in bucket order."""
        seen: list[QuadraticProxyFunction] = []
        for fct in self.functions[fixing_index]:
            if not any(fct is s for s in seen):
                seen.append(fct)
        return seen
