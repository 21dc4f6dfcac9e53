"""Rate-basis and time-zone conversions shared by connections and reconciliation."""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Protocol


class _HasRate(Protocol):
    @property
    def rate(self) -> float: ...


def system_utc_offset_hours() -> float:
    """Standard (non-DST) UTC offset of the local system, in hours."""
    return -time.timezone / 3600.0


def convert_to_base_rate(close_rate: float, price_currency: _HasRate) -> float:
    """Express a downloaded rate in base-currency terms.

    ``close_rate`` is units of the security per unit of the price currency;
    ``price_currency.rate`` is units of the price currency per base unit.
    The product is units of the security per base unit.
    """
    if close_rate == 0.0:
        return 0.0
    return close_rate * price_currency.rate


def correct_exchange_time(
    raw: datetime,
    exchange_offset_hours: float,
    local_offset_hours: float,
) -> datetime:
    """Shift an exchange wall-clock time onto the local wall clock.

    The correction is ``local - exchange``: an exchange at UTC-5 seen from
    a system at UTC-6 moves the time back by one hour.
    """
    return raw + timedelta(hours=local_offset_hours - exchange_offset_hours)


def to_epoch_millis(dt: datetime, local_offset_hours: float) -> int:
    """Convert a datetime to epoch milliseconds.

    Naive datetimes are local wall-clock times at ``local_offset_hours``.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone(timedelta(hours=local_offset_hours)))
    return int(round(dt.timestamp() * 1000))


def from_epoch_millis(millis: int, local_offset_hours: float) -> datetime:
    """Inverse of to_epoch_millis(): a naive local wall-clock datetime."""
    tz = timezone(timedelta(hours=local_offset_hours))
    return datetime.fromtimestamp(millis / 1000, tz=tz).replace(tzinfo=None)
