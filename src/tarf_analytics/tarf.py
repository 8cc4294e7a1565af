"""Target redemption forward (TARF) contract.

A TARF exchanges, on each fixing date, a long position payoff against a short
position payoff (typically a long call against a geared short put on an FX
rate). Positive payouts accumulate; once the accumulated amount reaches the
target the contract terminates and no further fixings are paid.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import datetime as dt
import numpy as np

from .enums import CouponType, OptionType
from .exceptions import ConfigurationError, ValidationError


@dataclass(frozen=True, slots=True)
class StrikedPayoff:
    """Vanilla payoff ``max(S - K, 0)`` (call) or ``max(K - S, 0)`` (put)."""

    option_type: OptionType
    strike: float

    def __post_init__(self) -> None:
        if not isinstance(self.option_type, OptionType):
            raise ConfigurationError(
                f"option_type must be OptionType enum, got {type(self.option_type).__name__}"
            )
        strike = float(self.strike)
        if not np.isfinite(strike) or strike < 0.0:
            raise ValidationError(f"strike must be finite and >= 0, got {self.strike}")
        object.__setattr__(self, "strike", strike)

    def __call__(self, spot: np.ndarray | float) -> np.ndarray:
        spot = np.asarray(spot, dtype=float)
        if self.option_type is OptionType.CALL:
            return np.maximum(spot - self.strike, 0.0)
        return np.maximum(self.strike - spot, 0.0)


@dataclass(frozen=True, slots=True)
class TargetRedemptionForward:
    """Contract specification of a target redemption forward.

    Attributes
    ==========
    fixing_dates, payment_dates:
        One payment date per fixing date, both strictly increasing.
    source_nominal:
        Notional in the source (foreign) currency; payouts are per unit nominal.
    long_payoff, short_payoff:
        Payoffs of the long and short positions. The long position's option
        type decides whether the contract is call-like or put-like.
    target:
        Accumulation level at which the contract terminates.
    coupon_type:
        Coupon on the knock-out fixing: NONE (nothing), CAPPED (only the
        amount left to the target) or FULL (the full payout).
    accumulated_amount:
        Amount accumulated by past fixings, always assuming a full coupon.
    last_amount:
        Payout of the last past fixing; paid on its payment date, so it is part
        of the value between that fixing and its payment.
    """

    fixing_dates: tuple[dt.datetime, ...]
    payment_dates: tuple[dt.datetime, ...]
    source_nominal: float
    long_payoff: StrikedPayoff
    short_payoff: StrikedPayoff
    target: float
    coupon_type: CouponType | str = CouponType.CAPPED
    long_gearing: float = 1.0
    short_gearing: float = 1.0
    accumulated_amount: float = 0.0
    last_amount: float | None = None
    _fixing_array: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if isinstance(self.coupon_type, str):
            object.__setattr__(self, "coupon_type", CouponType(self.coupon_type))
        if not isinstance(self.coupon_type, CouponType):
            raise ConfigurationError(
                f"coupon_type must be CouponType enum, got {type(self.coupon_type).__name__}"
            )
        fixing_dates = tuple(self.fixing_dates)
        payment_dates = tuple(self.payment_dates)
        if not fixing_dates:
            raise ValidationError("at least one fixing date is required")
        if len(fixing_dates) != len(payment_dates):
            raise ValidationError(
                f"fixing_dates ({len(fixing_dates)}) and payment_dates "
                f"({len(payment_dates)}) must have the same length"
            )
        if any(b <= a for a, b in zip(fixing_dates, fixing_dates[1:])):
            raise ValidationError("fixing_dates must be strictly increasing")
        if any(p < f for f, p in zip(fixing_dates, payment_dates)):
            raise ValidationError("payment dates must not precede their fixing dates")
        if self.source_nominal <= 0.0:
            raise ValidationError(f"source_nominal must be positive, got {self.source_nominal}")
        if self.target <= 0.0:
            raise ValidationError(f"target must be positive, got {self.target}")
        if self.long_gearing < 0.0 or self.short_gearing < 0.0:
            raise ValidationError("gearings must be >= 0")
        if self.accumulated_amount < 0.0:
            raise ValidationError(
                f"accumulated_amount must be >= 0, got {self.accumulated_amount}"
            )
        object.__setattr__(self, "fixing_dates", fixing_dates)
        object.__setattr__(self, "payment_dates", payment_dates)
        object.__setattr__(self, "_fixing_array", np.array(fixing_dates, dtype="datetime64[us]"))

    # ------------------------------------------------------------------
    # Payout logic
    # ------------------------------------------------------------------

    @property
    def long_position_type(self) -> OptionType:
        """Call-like (ascending value in spot) or put-like (descending)."""
        return self.long_payoff.option_type

    def naked_payout(self, fixing: np.ndarray | float) -> np.ndarray:
        """Payout per unit nominal assuming a full coupon."""
        return self.long_gearing * self.long_payoff(fixing) - self.short_gearing * self.short_payoff(
            fixing
        )

    def payout(
        self, fixing: np.ndarray | float, accumulated: np.ndarray | float
    ) -> tuple[np.ndarray, np.ndarray]:
        """Payout per unit nominal of one fixing and the updated accumulated amount.

        Vectorised over paths. The accumulated amount grows by the positive part
        of the naked payout; the coupon on the fixing that reaches the target
        follows ``coupon_type``.
        """
        accumulated = np.asarray(accumulated, dtype=float)
        naked = self.naked_payout(fixing)
        new_accumulated = accumulated + np.maximum(naked, 0.0)
        knocked_out = new_accumulated >= self.target
        if self.coupon_type is CouponType.NONE:
            paid = np.where(knocked_out, 0.0, naked)
        elif self.coupon_type is CouponType.CAPPED:
            paid = np.where(knocked_out, self.target - accumulated, naked)
        else:
            paid = naked
        return paid, new_accumulated

    # ------------------------------------------------------------------
    # Schedule bookkeeping
    # ------------------------------------------------------------------

    def _first_open(self, pricing_date: dt.datetime) -> int:
        return int(np.searchsorted(self._fixing_array, np.datetime64(pricing_date, "us"), "right"))

    def open_fixing_dates(self, pricing_date: dt.datetime) -> list[dt.datetime]:
        """Fixing dates strictly after *pricing_date*."""
        return list(self.fixing_dates[self._first_open(pricing_date) :])

    def open_payment_dates(self, pricing_date: dt.datetime) -> list[dt.datetime]:
        """Payment dates belonging to the open fixings."""
        return list(self.payment_dates[self._first_open(pricing_date) :])

    @property
    def last_payment_date(self) -> dt.datetime:
        return self.payment_dates[-1]

    @property
    def is_knocked_out(self) -> bool:
        return self.accumulated_amount >= self.target

    def unsettled_payment(self, pricing_date: dt.datetime) -> tuple[dt.datetime, float] | None:
        """Payment date and amount (nominal applied) of a fixed but unpaid coupon."""
        idx = self._first_open(pricing_date) - 1
        if idx < 0 or self.last_amount is None:
            return None
        payment_date = self.payment_dates[idx]
        if payment_date <= pricing_date:
            return None
        return payment_date, self.last_amount * self.source_nominal

    def is_expired(self, pricing_date: dt.datetime) -> bool:
        """No open fixings (or knocked out) and nothing left to settle."""
        no_fixings = self._first_open(pricing_date) >= len(self.fixing_dates)
        return (no_fixings or self.is_knocked_out) and self.unsettled_payment(pricing_date) is None
