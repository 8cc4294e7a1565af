"""Build a proxy surface from simulated TARF observations.

For every fixing index the accumulated amount buckets are merged into groups
holding enough points, each group is split at a spot cutoff into two
segments, a quadratic is fitted on each segment and the result is assembled
into one QuadraticProxyFunction shared by all buckets of the group.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import Executor
from dataclasses import dataclass
import datetime as dt
import logging
import numpy as np

from ..enums import OptionType
from ..exceptions import DomainError
from .observations import ObservationStore
from .params import ProxyParams
from .proxy import ProxySurface, QuadraticProxyFunction, QuadraticSegment

logger = logging.getLogger(__name__)

# curvature below this share of the slope over the data span counts as none
LINEAR_TOLERANCE = 1e-8


def merge_buckets(
    sizes: Sequence[int], density_factor: int, min_regression_points: int = 3
) -> list[list[int]]:
    """Partition bucket indices into contiguous groups with enough points.

    Starting at the lowest bucket, buckets are collected until
    ``density_factor * group_size >= total`` and the group holds at least
    ``2 * min_regression_points`` points (one regression per segment). If the
    remaining buckets fall short of either bound they are folded into the
    group just closed.
    """
    n = len(sizes)
    total = sum(sizes)
    floor = 2 * min_regression_points
    groups: list[list[int]] = []
    k = 0
    while k < n:
        group: list[int] = []
        size = 0
        while k < n:
            group.append(k)
            size += sizes[k]
            k += 1
            if density_factor * size >= total and size >= floor:
                break
        remaining = sum(sizes[k:])
        if k < n and (density_factor * remaining < total or remaining < floor):
            logger.debug(
                "Folding buckets %d..%d (%d points) into the previous group", k, n - 1, remaining
            )
            group.extend(range(k, n))
            k = n
        groups.append(group)
    return groups


@dataclass(frozen=True, slots=True)
class SegmentSplit:
    """Cutoff between the two regression segments of a sorted dataset."""

    cutoff: float
    relative_cutoff: float
    size_below: int
    size_above: int


def split_segments(
    spots: np.ndarray, option_type: OptionType, params: ProxyParams
) -> SegmentSplit:
    """Place the cutoff, moving it towards the middle while the critical segment is too small.

    *spots* must be sorted ascending. Spots ``<= cutoff`` belong to the lower
    segment. The critical segment is the upper one for calls and the lower
    one for puts.
    """
    is_call = option_type is OptionType.CALL
    n = spots.size
    spot_min, spot_max = float(spots[0]), float(spots[-1])
    rel = params.rel_cutoff if is_call else 1.0 - params.rel_cutoff
    min_segment = int((1.0 - rel) * params.min_cutoff_ratio * n) + 1

    def sizes(cutoff: float) -> tuple[int, int]:
        below = int(np.searchsorted(spots, cutoff, side="right"))
        return below, n - below

    cutoff = spot_min + rel * (spot_max - spot_min)
    size_below, size_above = sizes(cutoff)
    while True:
        critical = size_above if is_call else size_below
        can_move = rel > 0.5 if is_call else rel < 0.5
        if not can_move or (
            critical >= min_segment and critical >= params.min_regression_points
        ):
            break
        if is_call:
            rel *= params.cutoff_shrink_factor
        else:
            rel /= min(params.cutoff_shrink_factor, 1.0)
        cutoff = spot_min + rel * (spot_max - spot_min)
        size_below, size_above = sizes(cutoff)
        logger.debug(
            "Critical segment too small (%d < %d), relative cutoff moved to %.6f",
            critical,
            max(min_segment, params.min_regression_points),
            rel,
        )
    return SegmentSplit(cutoff, rel, size_below, size_above)


def fit_quadratic(
    x: np.ndarray,
    y: np.ndarray,
    min_points: int = 3,
    fixing_index: int = -1,
    segment: str = "below",
) -> QuadraticSegment:
    """Least squares fit of ``y`` on the basis ``{1, x, x^2}``."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.size < min_points:
        raise DomainError(fixing_index, segment, x.size, min_points)
    basis = np.column_stack([np.ones_like(x), x, x * x])
    coef, *_ = np.linalg.lstsq(basis, y, rcond=None)
    return QuadraticSegment(a=float(coef[2]), b=float(coef[1]), c=float(coef[0]))


def _monotone_segment(
    segment: QuadraticSegment,
    x: np.ndarray,
    y: np.ndarray,
    option_type: OptionType,
    fixing_index: int,
    name: str,
) -> QuadraticSegment:
    """Drop numerically zero curvature and flatten a line running the wrong way.

    A fit on (almost) linear data keeps a tiny curvature whose vertex lies far
    outside the data; clamping at that vertex would give an absurd value. A
    linear segment has nothing to clamp at, so it must ascend for call-like and
    descend for put-like contracts; otherwise it is replaced by its mean.
    """
    # x is sorted
    span = float(x[-1] - x[0])
    if abs(segment.a) * span > LINEAR_TOLERANCE * abs(segment.b):
        return segment
    sign = 1.0 if option_type is OptionType.CALL else -1.0
    if sign * segment.b < 0.0:
        mean = float(np.mean(y))
        logger.debug(
            "Fixing index %d: linear segment '%s' with slope %.6g against the option "
            "direction, flattened at %.6g",
            fixing_index,
            name,
            segment.b,
            mean,
        )
        return QuadraticSegment(0.0, 0.0, mean)
    return QuadraticSegment(0.0, segment.b, segment.c)


def _percentile_spot(spots: np.ndarray, fraction: float) -> float:
    return float(spots[min(int(spots.size * fraction), spots.size - 1)])


def build_proxy_function(
    data: np.ndarray,
    option_type: OptionType,
    params: ProxyParams,
    fixing_index: int = -1,
) -> QuadraticProxyFunction:
    """Fit one proxy function on a merged ``(n, 2)`` dataset sorted by spot."""
    spots = data[:, 0]
    values = data[:, 1]
    if spots.size == 0:
        raise DomainError(fixing_index, "below", 0, params.min_regression_points)

    spot_min, spot_max = float(spots[0]), float(spots[-1])
    if abs(spot_max - spot_min) < np.finfo(float).eps:
        mean = float(values.mean())
        logger.debug(
            "Fixing index %d: spot range collapsed at %.6f, constant proxy %.6f",
            fixing_index,
            spot_min,
            mean,
        )
        return QuadraticProxyFunction.constant(option_type, mean, spot_min, spot_max)

    is_call = option_type is OptionType.CALL
    split = split_segments(spots, option_type, params)
    k = split.size_below
    below = _monotone_segment(
        fit_quadratic(spots[:k], values[:k], params.min_regression_points, fixing_index, "below"),
        spots[:k],
        values[:k],
        option_type,
        fixing_index,
        "below",
    )
    above = _monotone_segment(
        fit_quadratic(spots[k:], values[k:], params.min_regression_points, fixing_index, "above"),
        spots[k:],
        values[k:],
        option_type,
        fixing_index,
        "above",
    )

    extrapolation = params.min_lower_extrapolation
    lower_cutoff = _percentile_spot(spots, extrapolation if is_call else 1.0 - extrapolation)
    lower_cutoff = min(lower_cutoff, split.cutoff) if is_call else max(lower_cutoff, split.cutoff)

    logger.debug(
        "Fixing index %d: cutoff=%.6f (%d/%d points), below=(%.6g, %.6g, %.6g), "
        "above=(%.6g, %.6g, %.6g)",
        fixing_index,
        split.cutoff,
        split.size_below,
        split.size_above,
        below.a,
        below.b,
        below.c,
        above.a,
        above.b,
        above.c,
    )
    return QuadraticProxyFunction(
        option_type=option_type,
        cutoff=split.cutoff,
        lower_cutoff=lower_cutoff,
        core_region_min=_percentile_spot(spots, params.core_cutoff),
        core_region_max=_percentile_spot(spots, 1.0 - params.core_cutoff),
        below=below,
        above=above,
    )


def _build_row(
    store: ObservationStore, fixing_index: int, option_type: OptionType, params: ProxyParams
) -> list[QuadraticProxyFunction]:
    groups = merge_buckets(
        store.sizes(fixing_index), params.density_factor, params.min_regression_points
    )
    logger.debug("Fixing index %d: bucket groups %s", fixing_index, groups)
    row: list[QuadraticProxyFunction | None] = [None] * store.n_buckets
    for group in groups:
        fct = build_proxy_function(store.group(fixing_index, group), option_type, params, fixing_index)
        for b in group:
            row[b] = fct
    return row


def build_proxy_surface(
    store: ObservationStore,
    option_type: OptionType,
    params: ProxyParams,
    origin_date: dt.datetime,
    open_fixing_dates: Sequence[dt.datetime],
    last_payment_date: dt.datetime,
    executor: Executor | None = None,
) -> ProxySurface:
    """Build the proxy functions of all fixing indices.

    Fixing indices are independent; with an *executor* they are built
    concurrently. The store must hold the fully reduced observations.
    """
    indices = range(store.n_fixings)
    if executor is None:
        rows = [_build_row(store, f, option_type, params) for f in indices]
    else:
        rows = list(executor.map(lambda f: _build_row(store, f, option_type, params), indices))
    return ProxySurface(
        origin_date=origin_date,
        open_fixing_dates=tuple(open_fixing_dates),
        bucket_limits=store.limits,
        last_payment_date=last_payment_date,
        functions=rows,
    )
