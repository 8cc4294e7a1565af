import datetime as dt

import numpy as np

from tarf_analytics.enums import CouponType, OptionType
from tarf_analytics.market_environment import MarketData
from tarf_analytics.rates import DiscountCurve
from tarf_analytics.schedule import make_fixing_schedule
from tarf_analytics.stochastic_processes import GBMParams, GeometricBrownianMotion
from tarf_analytics.tarf import StrikedPayoff, TargetRedemptionForward
from tarf_analytics.valuation.observations import ObservationStore, bucket_limits

PRICING_DATE = dt.datetime(2025, 1, 1)
SCHEDULE_START = dt.datetime(2025, 1, 2)
LAST_FIXING = dt.datetime(2025, 12, 31)
CURRENCY = "USD"
SPOT = 1.10
RATE = 0.03
VOL = 0.10


def flat_curve(rate: float, end_time: float = 3.0) -> DiscountCurve:
    """Flat curve long enough for every schedule used in the tests."""
    return DiscountCurve.flat(rate=rate, end_time=end_time, steps=12)


def make_tarf(
    start: dt.datetime,
    end: dt.datetime,
    *,
    option_type: OptionType = OptionType.CALL,
    strike: float = 1.10,
    target: float = 0.10,
    short_gearing: float = 2.0,
    coupon_type: CouponType = CouponType.CAPPED,
    accumulated_amount: float = 0.0,
    last_amount: float | None = None,
    nominal: float = 1_000_000.0,
) -> TargetRedemptionForward:
    """Monthly TARF; call-like means long call / short put, put-like the reverse."""
    fixing_dates, payment_dates = make_fixing_schedule(start, end, "ME", payment_lag_days=2)
    other = OptionType.PUT if option_type is OptionType.CALL else OptionType.CALL
    return TargetRedemptionForward(
        fixing_dates=fixing_dates,
        payment_dates=payment_dates,
        source_nominal=nominal,
        long_payoff=StrikedPayoff(option_type, strike),
        short_payoff=StrikedPayoff(other, strike),
        target=target,
        coupon_type=coupon_type,
        short_gearing=short_gearing,
        accumulated_amount=accumulated_amount,
        last_amount=last_amount,
    )


def make_process(
    market_data: MarketData,
    spot: float = 1.10,
    vol: float = 0.10,
    foreign_rate: float | None = 0.01,
) -> GeometricBrownianMotion:
    foreign = flat_curve(foreign_rate) if foreign_rate is not None else None
    return GeometricBrownianMotion(
        "EURUSD",
        market_data,
        GBMParams(initial_value=spot, volatility=vol),
        foreign_curve=foreign,
    )


def make_store(
    points_per_bucket: list[int],
    *,
    n_fixings: int = 1,
    target: float = 1.0,
    seed: int = 7,
    value_fn=lambda s: (s - 1.0) * 10.0,
) -> ObservationStore:
    """Store with evenly spaced spots and noisy values in every fixing index."""
    limits = bucket_limits(0.0, target, len(points_per_bucket))
    store = ObservationStore(n_fixings, limits)
    rng = np.random.default_rng(seed)
    width = target / len(points_per_bucket)
    for f in range(n_fixings):
        for b, n in enumerate(points_per_bucket):
            spots = np.linspace(0.8, 1.2, n)
            values = value_fn(spots) + rng.normal(0.0, 0.01, n)
            accumulated = np.full(n, limits[b] + 0.5 * width)
            store.add(f, accumulated, spots, values)
    return store
