"""Monte Carlo valuation of a TARF with optional proxy surface generation."""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
import logging
import numpy as np

from ..enums import EngineState
from ..exceptions import ConfigurationError, ConvergenceError, ValidationError
from ..random_sources import BrownianBridge, RandomSource, make_random_source
from ..rates import DiscountCurve
from ..statistics import RunningStatistics, SampleAccumulator
from ..stochastic_processes import GeometricBrownianMotion
from ..tarf import TargetRedemptionForward
from ..utils import build_time_grid, log_timing, year_fractions
from .observations import ObservationStore, bucket_limits
from .params import MonteCarloParams, ProxyParams
from .path_pricer import TarfPathPricer
from .proxy import ProxySurface
from .proxy_builder import build_proxy_surface

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SimulationResult:
    """Outcome of one engine run.

    ``value`` covers the open fixings only. ``error_estimate`` is None when the
    random source does not support error estimates and inf for a single sample.
    """

    value: float
    error_estimate: float | None
    samples: int
    state: EngineState
    proxy: ProxySurface | None = None
    convergence_error: ConvergenceError | None = None

    @property
    def converged(self) -> bool:
        return self.state is EngineState.CONVERGED


class McTarfEngine:
    """Monte Carlo engine for a target redemption forward.

    Samples are drawn in blocks of ``params.block_size`` keyed by their global
    offset. Blocks may run on a thread pool; their partial statistics and
    observations are reduced in block order, so results do not depend on
    ``max_workers``.

    Parameters
    ----------
    contract : TargetRedemptionForward
    process : GeometricBrownianMotion
        Simulated underlying; its pricing date is the valuation date.
    params : MonteCarloParams
    proxy_params : ProxyParams, optional
        Heuristics of the proxy builder (defaults if None).
    discount_curve : DiscountCurve, optional
        Curve discounting the payments; defaults to the process' domestic curve.
    random_source : RandomSource, optional
        Overrides the built-in source selected by ``params.random_source``.
    statistics_factory : callable, optional
        Creates an empty sample accumulator; defaults to RunningStatistics.
    """

    def __init__(
        self,
        contract: TargetRedemptionForward,
        process: GeometricBrownianMotion,
        params: MonteCarloParams,
        proxy_params: ProxyParams | None = None,
        discount_curve: DiscountCurve | None = None,
        random_source: RandomSource | None = None,
        statistics_factory: Callable[[], SampleAccumulator] | None = None,
    ) -> None:
        self.state = EngineState.CONFIGURING
        if not isinstance(contract, TargetRedemptionForward):
            raise ConfigurationError(
                f"contract must be a TargetRedemptionForward, got {type(contract).__name__}"
            )
        if not isinstance(params, MonteCarloParams):
            raise ConfigurationError(
                f"params must be MonteCarloParams, got {type(params).__name__}"
            )
        if proxy_params is not None and not isinstance(proxy_params, ProxyParams):
            raise ConfigurationError(
                f"proxy_params must be ProxyParams, got {type(proxy_params).__name__}"
            )
        self.contract = contract
        self.process = process
        self.params = params
        self.proxy_params = proxy_params or ProxyParams()
        self.discount_curve = discount_curve or process.discount_curve
        self.random_source = random_source or make_random_source(
            params.random_source, params.seed
        )
        if params.absolute_tolerance is not None and not self.random_source.allows_error_estimate:
            raise ConfigurationError(
                "chosen random source does not allow an error estimate; "
                "absolute_tolerance cannot be used"
            )
        self.statistics_factory = statistics_factory or RunningStatistics
        self.pricing_date = process.pricing_date

        self.open_fixing_dates = contract.open_fixing_dates(self.pricing_date)
        if not self.open_fixing_dates:
            raise ValidationError("contract has no open fixings, nothing to simulate")
        if contract.is_knocked_out:
            raise ValidationError("contract is knocked out, nothing to simulate")

        fixing_times = year_fractions(self.pricing_date, self.open_fixing_dates)
        if params.steps is not None:
            steps = params.steps
        else:
            steps = max(int(params.steps_per_year * fixing_times[-1]), 1)
        self.time_grid = build_time_grid(fixing_times, steps)
        self.bridge = BrownianBridge(self.time_grid[1:]) if params.brownian_bridge else None

        payment_times = year_fractions(
            self.pricing_date, contract.open_payment_dates(self.pricing_date)
        )
        last_time = year_fractions(self.pricing_date, [contract.last_payment_date])[0]
        self.pricer = TarfPathPricer(
            contract,
            fixing_grid_indices=np.searchsorted(self.time_grid, fixing_times),
            discounts=self.discount_curve.df(payment_times),
            last_discount=float(self.discount_curve.df(last_time)),
            accumulated_amount=contract.accumulated_amount,
        )
        self.limits = (
            bucket_limits(
                contract.accumulated_amount, contract.target, self.proxy_params.n_buckets
            )
            if params.generate_proxy
            else None
        )

        self.statistics: SampleAccumulator = self.statistics_factory()
        self.store: ObservationStore | None = None
        self._samples_drawn = 0

    # ------------------------------------------------------------------
    # Path simulation
    # ------------------------------------------------------------------

    def _price(self, normals: np.ndarray, store: ObservationStore | None) -> np.ndarray:
        if self.bridge is not None:
            normals = self.bridge.transform(normals)
        paths = self.process.generate_paths(self.time_grid, normals)
        return self.pricer(paths, store)

    def _simulate_block(
        self, offset: int, n_samples: int
    ) -> tuple[SampleAccumulator, ObservationStore | None]:
        """Simulate one block into private statistics and observations."""
        statistics = self.statistics_factory()
        store = (
            ObservationStore(self.pricer.n_fixings, self.limits)
            if self.limits is not None
            else None
        )
        normals = self.random_source.normals(offset, n_samples, self.time_grid.size - 1)
        values = self._price(normals, store)
        if self.params.antithetic_variate:
            values = 0.5 * (values + self._price(-normals, store))
        statistics.add(values)
        return statistics, store

    def _add_samples(self, n_samples: int, executor: Executor | None) -> None:
        start = self._samples_drawn
        end = start + n_samples
        offsets = list(range(start, end, self.params.block_size))
        sizes = [min(self.params.block_size, end - o) for o in offsets]
        if executor is None:
            partials = [self._simulate_block(o, s) for o, s in zip(offsets, sizes)]
        else:
            partials = list(executor.map(self._simulate_block, offsets, sizes))
        # reduction in block order
        for statistics, store in partials:
            self.statistics.merge(statistics)
            if store is not None:
                self.store.merge(store)
        self._samples_drawn = end
        logger.debug(
            "MC TARF batch=%d samples=%d mean=%.6g error=%.6g",
            n_samples,
            self.statistics.samples,
            self.statistics.mean,
            self.statistics.error_estimate,
        )

    def _run_to_tolerance(self, executor: Executor | None) -> ConvergenceError | None:
        """Add batches until the error estimate reaches the tolerance or max_samples."""
        tolerance = self.params.absolute_tolerance
        max_samples = self.params.max_samples
        min_samples = self.params.min_samples

        first = min_samples if max_samples is None else min(min_samples, max_samples)
        self._add_samples(first, executor)
        error = self.statistics.error_estimate
        while error > tolerance:
            n = self.statistics.samples
            if max_samples is not None and n >= max_samples:
                logger.warning(
                    "MC TARF did not converge: error=%.6g > tolerance=%.6g after %d samples",
                    error,
                    tolerance,
                    n,
                )
                return ConvergenceError(error, tolerance, n)
            if np.isfinite(error):
                order = error * error / (tolerance * tolerance)
                next_batch = max(int(n * order * 0.8 - n), min_samples)
            else:
                next_batch = min_samples
            if max_samples is not None:
                next_batch = min(next_batch, max_samples - n)
            self._add_samples(next_batch, executor)
            error = self.statistics.error_estimate
        return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def calculate(self) -> SimulationResult:
        """Run the simulation and, if requested, build the proxy surface."""
        self.statistics = self.statistics_factory()
        self.store = (
            ObservationStore(self.pricer.n_fixings, self.limits)
            if self.limits is not None
            else None
        )
        self._samples_drawn = 0
        self.state = EngineState.SIMULATING
        logger.debug(
            "MC TARF open_fixings=%d time_steps=%d proxy=%s",
            self.pricer.n_fixings,
            self.time_grid.size - 1,
            self.params.generate_proxy,
        )

        workers = self.params.max_workers
        executor = ThreadPoolExecutor(max_workers=workers) if workers > 1 else None
        try:
            with log_timing(logger, "MC TARF simulation", self.params.log_timings):
                if self.params.samples is not None:
                    self._add_samples(self.params.samples, executor)
                    convergence_error = None
                else:
                    convergence_error = self._run_to_tolerance(executor)

            proxy = None
            if self.store is not None:
                with log_timing(logger, "MC TARF proxy build", self.params.log_timings):
                    proxy = build_proxy_surface(
                        self.store,
                        self.contract.long_position_type,
                        self.proxy_params,
                        origin_date=self.pricing_date,
                        open_fixing_dates=self.open_fixing_dates,
                        last_payment_date=self.contract.last_payment_date,
                        executor=executor,
                    )
                # observations are only needed to build the proxy
                self.store = None
        except Exception:
            self.state = EngineState.FAILED
            raise
        finally:
            if executor is not None:
                executor.shutdown()

        if convergence_error is not None:
            self.state = EngineState.FAILED
        else:
            self.state = EngineState.CONVERGED
        error_estimate = (
            self.statistics.error_estimate
            if self.random_source.allows_error_estimate
            else None
        )
        return SimulationResult(
            value=float(self.statistics.mean),
            error_estimate=error_estimate,
            samples=self.statistics.samples,
            state=self.state,
            proxy=proxy,
            convergence_error=convergence_error,
        )
