"""Market data container for valuation and simulation."""

from __future__ import annotations
from dataclasses import dataclass
import datetime as dt
from .rates import DiscountCurve
from .exceptions import ValidationError


@dataclass(frozen=True, slots=True)
class MarketData:
    """Market data required for valuation/simulation.

    ``discount_curve`` is the domestic (payment currency) curve; its times are
    year fractions measured from ``pricing_date``.
    """

    pricing_date: dt.datetime
    discount_curve: DiscountCurve
    currency: str

    def __post_init__(self) -> None:
        if not isinstance(self.pricing_date, dt.datetime):
            raise ValidationError(
                f"pricing_date must be a datetime, got {type(self.pricing_date).__name__}"
            )
        if not isinstance(self.discount_curve, DiscountCurve):
            raise ValidationError(
                f"discount_curve must be a DiscountCurve, got {type(self.discount_curve).__name__}"
            )
        if not isinstance(self.currency, str) or not self.currency:
            raise ValidationError("currency must be a non-empty string")

    def discount(self, date: dt.datetime) -> float:
        """Discount factor from ``pricing_date`` to *date*."""
        return float(self.discount_curve.discount_dates(self.pricing_date, [date])[0])
