from collections.abc import Callable
from dataclasses import dataclass
import datetime as dt
import logging
import numpy as np

from ..exceptions import ConfigurationError, ConvergenceError, ValidationError
from ..market_environment import MarketData
from ..random_sources import RandomSource
from ..rates import DiscountCurve
from ..statistics import SampleAccumulator
from ..stochastic_processes import GeometricBrownianMotion
from ..tarf import TargetRedemptionForward
from ..utils import log_timing
from .monte_carlo import McTarfEngine
from .params import MonteCarloParams, ProxyParams
from .proxy import ProxySurface

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TarfValuationResult:
    """Present value of a TARF and, if requested, its proxy surface.

    Attributes
    ==========
    value:
        Present value including a fixed but not yet paid coupon.
    error_estimate:
        Standard error of the Monte Carlo estimate; None if the random source
        does not support error estimates, 0.0 if nothing was simulated and
        inf for a single sample.
    samples:
        Number of Monte Carlo samples used.
    converged:
        False if a tolerance was requested and not reached within max_samples.
    proxy:
        Proxy surface (only with ``generate_proxy``).
    convergence_error:
        The ConvergenceError describing a missed tolerance, else None.
    """

    value: float
    error_estimate: float | None
    samples: int
    converged: bool = True
    proxy: ProxySurface | None = None
    convergence_error: ConvergenceError | None = None

    def raise_for_convergence(self) -> None:
        """Raise the ConvergenceError if the tolerance was not reached."""
        if self.convergence_error is not None:
            raise self.convergence_error


def _unsettled_value(
    contract: TargetRedemptionForward, pricing_date: dt.datetime, discount_curve: DiscountCurve
) -> float:
    unsettled = contract.unsettled_payment(pricing_date)
    if unsettled is None:
        return 0.0
    payment_date, amount = unsettled
    return amount * float(discount_curve.discount_dates(pricing_date, [payment_date])[0])


def _nothing_to_simulate(contract: TargetRedemptionForward, pricing_date: dt.datetime) -> bool:
    return contract.is_knocked_out or not contract.open_fixing_dates(pricing_date)


class TarfValuation:
    """Monte Carlo valuation of a target redemption forward.

    Attributes
    ==========
    name: str
        Name of the valuation object/trade.
    contract: TargetRedemptionForward
        Contract terms.
    underlying: GeometricBrownianMotion
        Simulated FX rate; provides the pricing date and the default discount curve.
    params: MonteCarloParams
        Simulation settings.
    proxy_params: ProxyParams
        Proxy builder heuristics (used with ``params.generate_proxy``).
    discount_curve: DiscountCurve
        Curve discounting the payments (defaults to the underlying's curve).

    Methods
    =======
    calculate:
        Runs the simulation and returns a TarfValuationResult.
    present_value:
        Returns the present value only.
    """

    def __init__(
        self,
        name: str,
        contract: TargetRedemptionForward,
        underlying: GeometricBrownianMotion,
        params: MonteCarloParams,
        proxy_params: ProxyParams | None = None,
        discount_curve: DiscountCurve | None = None,
        random_source: RandomSource | None = None,
        statistics_factory: Callable[[], SampleAccumulator] | None = None,
    ) -> None:
        if not isinstance(contract, TargetRedemptionForward):
            raise ConfigurationError(
                f"contract must be a TargetRedemptionForward, got {type(contract).__name__}"
            )
        if not isinstance(params, MonteCarloParams):
            raise ConfigurationError("TARF valuation requires params=MonteCarloParams")
        if discount_curve is not None and not isinstance(discount_curve, DiscountCurve):
            raise ConfigurationError(
                f"discount_curve must be a DiscountCurve, got {type(discount_curve).__name__}"
            )
        self.name = name
        self.contract = contract
        self.underlying = underlying
        self.params = params
        self.proxy_params = proxy_params or ProxyParams()
        self.pricing_date = underlying.pricing_date
        self.discount_curve = discount_curve or underlying.discount_curve

        if _nothing_to_simulate(contract, self.pricing_date):
            logger.debug("TARF %s has no open fixings to simulate", name)
            self._engine = None
        else:
            self._engine = McTarfEngine(
                contract,
                underlying,
                params,
                proxy_params=self.proxy_params,
                discount_curve=self.discount_curve,
                random_source=random_source,
                statistics_factory=statistics_factory,
            )

    def calculate(self) -> TarfValuationResult:
        """Value the contract; simulate only if fixings are still open."""
        unsettled = _unsettled_value(self.contract, self.pricing_date, self.discount_curve)
        if self._engine is None:
            return TarfValuationResult(value=unsettled, error_estimate=0.0, samples=0)

        with log_timing(logger, f"TARF {self.name} calculate", self.params.log_timings):
            sim = self._engine.calculate()
        logger.debug(
            "TARF %s value=%.6g unsettled=%.6g samples=%d state=%s",
            self.name,
            sim.value + unsettled,
            unsettled,
            sim.samples,
            sim.state.value,
        )
        return TarfValuationResult(
            value=sim.value + unsettled,
            error_estimate=sim.error_estimate,
            samples=sim.samples,
            converged=sim.converged,
            proxy=sim.proxy,
            convergence_error=sim.convergence_error,
        )

    def present_value(self) -> float:
        """Calculate present value of the contract."""
        return self.calculate().value


def proxy_present_value(
    contract: TargetRedemptionForward,
    surface: ProxySurface,
    market_data: MarketData,
    spot: float | np.ndarray,
) -> float | np.ndarray:
    """Reprice *contract* on the market data's pricing date from a proxy surface.

    The contract carries the accumulated amount and last coupon as of that
    date; its open fixings must be among those the surface was built for.
    """
    pricing_date = market_data.pricing_date
    unsettled = _unsettled_value(contract, pricing_date, market_data.discount_curve)
    if _nothing_to_simulate(contract, pricing_date):
        if np.ndim(spot):
            return np.full(np.shape(spot), unsettled)
        return unsettled

    open_dates = tuple(contract.open_fixing_dates(pricing_date))
    covered = surface.open_fixing_dates[len(surface.open_fixing_dates) - len(open_dates) :]
    if len(open_dates) > surface.n_fixings or open_dates != covered:
        raise ValidationError(
            "open fixings of the contract are not covered by the proxy surface"
        )
    if contract.last_payment_date != surface.last_payment_date:
        raise ValidationError(
            "last payment date of the contract does not match the proxy surface"
        )
    value = surface.present_value(market_data, contract.accumulated_amount, spot)
    return value + unsettled
