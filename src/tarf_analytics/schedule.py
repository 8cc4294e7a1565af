"""Fixing and payment schedules for accumulating contracts."""

from __future__ import annotations

import datetime as dt
import pandas as pd

from .exceptions import ValidationError


def make_fixing_schedule(
    start: dt.datetime,
    end: dt.datetime,
    frequency: str = "ME",
    payment_lag_days: int = 2,
) -> tuple[list[dt.datetime], list[dt.datetime]]:
    """Generate fixing dates and their payment dates.

    Parameters
    ==========
    start: datetime
        first possible fixing date (inclusive)
    end: datetime
        last fixing date; always part of the schedule
    frequency: str
        pandas offset alias, e.g. "ME" (month end), "W-FRI", "QE"; see
        https://pandas.pydata.org/pandas-docs/stable/user_guide/timeseries.html#timeseries-offset-aliases
    payment_lag_days: int
        calendar days between a fixing and its payment

    Returns
    =======
    (fixing_dates, payment_dates): tuple of lists of datetime
    """
    if end <= start:
        raise ValidationError("end must be after start")
    if payment_lag_days < 0:
        raise ValidationError(f"payment_lag_days must be >= 0, got {payment_lag_days}")

    fixing_dates = list(pd.date_range(start=start, end=end, freq=frequency).to_pydatetime())
    if not fixing_dates or fixing_dates[-1] != end:
        fixing_dates.append(end)
    lag = dt.timedelta(days=payment_lag_days)
    payment_dates = [d + lag for d in fixing_dates]
    return fixing_dates, payment_dates
