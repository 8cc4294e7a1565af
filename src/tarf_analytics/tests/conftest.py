"""Shared pytest fixtures for tarf_analytics tests."""

import datetime as dt

import pytest

from tarf_analytics.market_environment import MarketData
from tarf_analytics.rates import DiscountCurve
from tarf_analytics.stochastic_processes import GeometricBrownianMotion
from tarf_analytics.tarf import TargetRedemptionForward
from tarf_analytics.valuation import MonteCarloParams

from tarf_analytics.tests.helpers import (
    CURRENCY,
    LAST_FIXING,
    PRICING_DATE,
    RATE,
    SCHEDULE_START,
    SPOT,
    VOL,
    flat_curve,
    make_process,
    make_tarf,
)


@pytest.fixture()
def pricing_date() -> dt.datetime:
    return PRICING_DATE


# ---------------------------------------------------------------------------
# Curve / Market Data
# ---------------------------------------------------------------------------


@pytest.fixture()
def discount_curve() -> DiscountCurve:
    return flat_curve(RATE)


@pytest.fixture()
def market_data(pricing_date: dt.datetime, discount_curve: DiscountCurve) -> MarketData:
    return MarketData(pricing_date, discount_curve, currency=CURRENCY)


@pytest.fixture()
def process(market_data: MarketData) -> GeometricBrownianMotion:
    return make_process(market_data, spot=SPOT, vol=VOL)


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


@pytest.fixture()
def call_tarf() -> TargetRedemptionForward:
    """Twelve monthly fixings, long call / 2x short put at 1.10, target 0.10."""
    return make_tarf(SCHEDULE_START, LAST_FIXING)


@pytest.fixture()
def short_call_tarf() -> TargetRedemptionForward:
    """Three monthly fixings, cheap to simulate."""
    return make_tarf(SCHEDULE_START, dt.datetime(2025, 3, 31))


# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------


@pytest.fixture()
def mc_params() -> MonteCarloParams:
    return MonteCarloParams(steps_per_year=12, samples=4_000, seed=42, block_size=1_000)
