"""Price reconciliation: pick the price to commit for one instrument.

Rules
-----
1. The most recent valid record of a successful history fetch is the
   historical candidate. History timestamps are dates and need no
   time-zone correction.
2. A successful current price with a non-zero rate replaces the historical
   candidate outright, whichever is chronologically newer. Its timestamp is
   moved from exchange time to local time first.
3. The candidate is committed only if its timestamp is strictly later than
   the one stored on the instrument.
4. The committed rate is in base-currency terms: the downloaded rate
   multiplied by the price currency's own base rate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from quotesync.core.conversions import (
    convert_to_base_rate,
    correct_exchange_time,
    from_epoch_millis,
    to_epoch_millis,
)
from quotesync.core.models import (
    PRICE_DATE_TAG,
    FetchResult,
    StockExchange,
    StockHistory,
    StockRecord,
)
from quotesync.host.protocols import Instrument

logger = logging.getLogger(__name__)

_DATE_FORMAT = "%Y-%m-%d"
_DATE_TIME_FORMAT = "%Y-%m-%d %I:%M %p"


class CandidateSource(StrEnum):
    HISTORY = "history"
    CURRENT = "current"


@dataclass(frozen=True)
class PriceCandidate:
    """The observation chosen for commit, with its local-time timestamp."""

    close_rate: float
    timestamp: datetime
    source: CandidateSource


@dataclass(frozen=True)
class CommitOutcome:
    """What commit_price() decided and wrote."""

    updated: bool
    stored_millis: int
    candidate_millis: int
    base_rate: float


def historical_candidate(history: StockHistory | None) -> PriceCandidate | None:
    if history is None:
        return None
    latest = history.find_most_recent_valid_record()
    if latest is None:
        return None
    return PriceCandidate(latest.close_rate, latest.timestamp, CandidateSource.HISTORY)


def current_candidate(
    record: StockRecord | None,
    exchange: StockExchange | None,
    local_offset_hours: float,
) -> PriceCandidate | None:
    if record is None or not record.is_valid:
        return None
    timestamp = record.timestamp
    if exchange is not None:
        timestamp = correct_exchange_time(
            timestamp, exchange.utc_offset_hours, local_offset_hours
        )
    return PriceCandidate(record.close_rate, timestamp, CandidateSource.CURRENT)


def select_candidate(
    history: FetchResult[StockHistory] | None,
    current: FetchResult[StockRecord] | None,
    exchange: StockExchange | None,
    local_offset_hours: float,
) -> PriceCandidate | None:
    """Merge the two fetch outcomes into at most one candidate."""
    candidate = None
    if history is not None and history.succeeded:
        candidate = historical_candidate(history.value)
    if current is not None and current.succeeded:
        override = current_candidate(current.value, exchange, local_offset_hours)
        if override is not None:
            candidate = override
    return candidate


def stored_timestamp_millis(instrument: Instrument, tag: str = PRICE_DATE_TAG) -> int:
    """Read the stored price timestamp tag; missing or garbled reads as 0."""
    raw = instrument.get_tag(tag)
    if raw is None or not raw.strip():
        return 0
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("Ignoring unparsable %s tag %r on %s", tag, raw, instrument.name)
        return 0


def commit_price(
    instrument: Instrument,
    candidate: PriceCandidate,
    price_currency: Instrument,
    local_offset_hours: float,
    tag: str = PRICE_DATE_TAG,
) -> CommitOutcome:
    """Write the candidate to the instrument if it is fresher than what is stored."""
    stored = stored_timestamp_millis(instrument, tag)
    candidate_millis = to_epoch_millis(candidate.timestamp, local_offset_hours)
    base_rate = convert_to_base_rate(candidate.close_rate, price_currency)

    if stored < candidate_millis and base_rate != 0.0:
        instrument.set_rate(base_rate)
        instrument.set_tag(tag, str(candidate_millis))
        return CommitOutcome(True, stored, candidate_millis, base_rate)

    if base_rate == 0.0:
        logger.info(
            "Converted rate for %s is zero (price currency %s); not updated",
            instrument.name,
            price_currency.currency_code or price_currency.id,
        )
    else:
        logger.info(
            "Current price update time %s not less than downloaded time %s for %s",
            _format_stored(stored, local_offset_hours),
            candidate.timestamp.strftime(_DATE_TIME_FORMAT),
            instrument.name,
        )
    return CommitOutcome(False, stored, candidate_millis, base_rate)


def _format_stored(millis: int, local_offset_hours: float) -> str:
    # tags written by other tools may lie outside the datetime range
    try:
        return from_epoch_millis(millis, local_offset_hours).strftime(_DATE_TIME_FORMAT)
    except (ValueError, OverflowError, OSError):
        return f"{millis} ms"


def format_price(price_currency: Instrument, close_rate: float) -> str:
    """Render ``1 / close_rate`` as an amount in the price currency."""
    amount = 0.0 if close_rate == 0.0 else 1.0 / close_rate
    code = price_currency.currency_code or price_currency.id
    return f"{code} {amount:,.2f}"


def build_price_display_text(
    price_currency: Instrument, name: str, candidate: PriceCandidate
) -> str:
    return (
        f"{name} as of {candidate.timestamp.strftime(_DATE_FORMAT)}: "
        f"{format_price(price_currency, candidate.close_rate)}"
    )


def build_price_log_text(
    price_currency: Instrument, name: str, candidate: PriceCandidate, updated: bool
) -> str:
    # intra-day current prices log the time too
    if updated:
        as_of = candidate.timestamp.strftime(_DATE_TIME_FORMAT)
        label = "Current price"
    else:
        as_of = candidate.timestamp.strftime(_DATE_FORMAT)
        label = "Latest historical price"
    return f"{label} for {name} as of {as_of}: {format_price(price_currency, candidate.close_rate)}"
