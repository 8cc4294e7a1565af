"""TARF valuation and proxy surface generation.

Public API
----------
Core classes:
    TarfValuation: Monte Carlo valuation front end
    TarfValuationResult: Value, error estimate and optional proxy surface
    proxy_present_value: Later-date repricing from a proxy surface

Engine:
    McTarfEngine: Monte Carlo driver (blocks, tolerance loop, proxy build)
    SimulationResult: Raw engine output

Proxy:
    ProxySurface, QuadraticProxyFunction, QuadraticSegment
    merge_buckets, split_segments, fit_quadratic, build_proxy_function, build_proxy_surface

Parameter classes:
    MonteCarloParams: Configuration for Monte Carlo valuation
    ProxyParams: Proxy builder heuristics
"""

from .core import TarfValuation, TarfValuationResult, proxy_present_value
from .monte_carlo import McTarfEngine, SimulationResult
from .observations import ObservationStore, bucket_index, bucket_limits
from .params import MonteCarloParams, ProxyParams
from .path_pricer import TarfPathPricer
from .proxy import ProxySurface, QuadraticProxyFunction, QuadraticSegment
from .proxy_builder import (
    SegmentSplit,
    build_proxy_function,
    build_proxy_surface,
    fit_quadratic,
    merge_buckets,
    split_segments,
)

__all__ = [
    # Core valuation classes
    "TarfValuation",
    "TarfValuationResult",
    "proxy_present_value",
    # Engine
    "McTarfEngine",
    "SimulationResult",
    "TarfPathPricer",
    "ObservationStore",
    "bucket_limits",
    "bucket_index",
    # Proxy
    "ProxySurface",
    "QuadraticProxyFunction",
    "QuadraticSegment",
    "SegmentSplit",
    "merge_buckets",
    "split_segments",
    "fit_quadratic",
    "build_proxy_function",
    "build_proxy_surface",
    # Parameter classes
    "MonteCarloParams",
    "ProxyParams",
]
