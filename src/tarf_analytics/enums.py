"""Enums for TARF valuation."""

from enum import Enum

__all__ = [
    "OptionType",
    "CouponType",
    "RandomSourceType",
    "EngineState",
    "DayCountConvention",
]


class OptionType(Enum):
    CALL = "call"
    PUT = "put"


class CouponType(Enum):
    """Coupon paid on the fixing at which the target is reached."""

    NONE = "none"
    CAPPED = "capped"
    FULL = "full"


class RandomSourceType(Enum):
    PSEUDO = "pseudo"
    SOBOL = "sobol"


class EngineState(Enum):
    CONFIGURING = "configuring"
    SIMULATING = "simulating"
    CONVERGED = "converged"
    FAILED = "failed"


class DayCountConvention(Enum):
    ACT_360 = "ACT/360"
    ACT_365F = "ACT/365F"
    ACT_365_25 = "ACT/365.25"
    THIRTY_360_US = "30/360 US"
