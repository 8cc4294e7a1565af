from .enums import CouponType, EngineState, OptionType, RandomSourceType
from .market_environment import MarketData
from .rates import DiscountCurve
from .schedule import make_fixing_schedule
from .stochastic_processes import GBMParams, GeometricBrownianMotion
from .tarf import StrikedPayoff, TargetRedemptionForward
from .valuation import (
    MonteCarloParams,
    ProxyParams,
    ProxySurface,
    TarfValuation,
    TarfValuationResult,
    proxy_present_value,
)


__all__ = [
    "CouponType",
    "EngineState",
    "OptionType",
    "RandomSourceType",
    "MarketData",
    "DiscountCurve",
    "make_fixing_schedule",
    "GBMParams",
    "GeometricBrownianMotion",
    "StrikedPayoff",
    "TargetRedemptionForward",
    "MonteCarloParams",
    "ProxyParams",
    "ProxySurface",
    "TarfValuation",
    "TarfValuationResult",
    "proxy_present_value",
]
