"""Yahoo Finance connection — CSV quotes and CSV price history.

Quotes come from the ``quotes.csv`` endpoint with format
``sl1d1t1c1ohgv`` (symbol, last trade, date, time, change, open, high,
low, volume). History comes from ``table.csv`` with columns
``Date,Open,High,Low,Close,Volume,Adj Close``.

Quote times are exchange wall-clock times; the download task corrects
them to local time.
"""

from __future__ import annotations

import csv
import logging
from datetime import datetime
from typing import ClassVar

from quotesync.connections.base import BaseConnection, ConnectionContext, split_symbol_override
from quotesync.core.config import HttpConfig
from quotesync.core.exceptions import ParsingError
from quotesync.core.models import DateRange, StockExchange, StockRecord
from quotesync.host.protocols import CurrencyTable, Instrument, SymbolMap
from quotesync.host.store import SnapshotStore

logger = logging.getLogger(__name__)

_QUOTE_FORMAT = "sl1d1t1c1ohgv"
_QUOTE_TIME_FORMAT = "%m/%d/%Y %I:%M%p"
_MISSING_VALUES = {"", "N/A", "-"}


class YahooConnection(BaseConnection):
    """History and current prices from Yahoo Finance.

    Parameters
    ----------
    quotes_url : str
        Base URL of the quotes CSV endpoint.
    history_url : str
        Base URL of the history CSV endpoint.
    """

    connection_id: ClassVar[str] = "yahoo"
    supports_history: ClassVar[bool] = True
    supports_current_price: ClassVar[bool] = True
    history_date_format: ClassVar[str] = "%Y-%m-%d"
    history_close_column: ClassVar[int] = 4

    def __init__(
        self,
        table: CurrencyTable,
        symbol_map: SymbolMap,
        quotes_url: str,
        history_url: str,
        http: HttpConfig | None = None,
        snapshot_store: SnapshotStore | None = None,
        display_name: str = "Yahoo Finance",
    ) -> None:
        super().__init__(
            table,
            symbol_map,
            http=http,
            snapshot_store=snapshot_store,
            display_name=display_name,
        )
        self._quotes_url = quotes_url
        self._history_url = history_url

    @classmethod
    def from_context(cls, context: ConnectionContext) -> YahooConnection:
        return cls(
            context.table,
            context.symbol_map,
            quotes_url=context.config.providers.yahoo_quotes_url,
            history_url=context.config.providers.yahoo_history_url,
            http=context.config.http,
            snapshot_store=context.snapshot_store,
        )

    # --- Symbols ---

    def get_full_ticker_symbol(
        self, raw_symbol: str | None, exchange: StockExchange | None
    ) -> str | None:
        """Append the exchange suffix (``VOD`` on LSE → ``VOD.L``).

        A symbol that already names its market (contains '.') keeps it, with
        any trailing currency override clipped off.
        """
        if raw_symbol is None or not raw_symbol.strip():
            return None
        ticker = raw_symbol.strip().upper()
        if "." in ticker:
            symbol, _ = split_symbol_override(ticker, ".")
            return symbol
        suffix = exchange.provider_suffix(self.connection_id) if exchange else None
        if not suffix:
            return ticker
        if not suffix.startswith("."):
            suffix = "." + suffix
        return ticker + suffix

    def get_currency_code_for_quote(
        self, raw_symbol: str | None, exchange: StockExchange | None
    ) -> str | None:
        if raw_symbol is None or not raw_symbol.strip():
            return None
        _, override = split_symbol_override(raw_symbol.strip().upper(), ".")
        if override:
            return override
        return super().get_currency_code_for_quote(raw_symbol, exchange)

    # --- Requests ---

    def history_request(
        self, full_ticker: str, date_range: DateRange
    ) -> tuple[str, dict[str, str]]:
        start, end = date_range.start_date, date_range.end_date
        # months are zero-based in this API
        params = {
            "s": full_ticker,
            "a": f"{start.month - 1:02d}",
            "b": str(start.day),
            "c": str(start.year),
            "d": f"{end.month - 1:02d}",
            "e": str(end.day),
            "f": str(end.year),
            "g": "d",
            "ignore": ".csv",
        }
        return self._history_url, params

    def current_price_request(self, full_ticker: str) -> tuple[str, dict[str, str]]:
        params = {"s": full_ticker, "f": _QUOTE_FORMAT, "e": ".csv"}
        return self._quotes_url, params

    # --- Parsing ---

    def parse_current_price(self, body: str, instrument: Instrument) -> StockRecord | None:
        """Parse the first non-blank quote line.

        A missing or zero last-trade value yields a record with a zero rate,
        which callers treat as a failed current price.
        """
        line = next((ln.strip() for ln in body.splitlines() if ln.strip()), None)
        if line is None:
            return None
        fields = next(csv.reader([line]))
        if len(fields) < 4:
            raise ParsingError(
                f"Unexpected quote format for {instrument.name}",
                instrument=instrument,
                context={"line": line[:200], "connection": self.connection_id},
            )

        price_text = fields[1].strip()
        stamp = f"{fields[2].strip()} {fields[3].strip()}"
        if price_text in _MISSING_VALUES:
            # unknown symbols come back as N/A in every field
            logger.warning("No last trade price for %s", instrument.name)
            return StockRecord(
                close_rate=0.0,
                timestamp=_parse_quote_time(stamp) or datetime.now(),
                price_display=price_text,
            )

        quoted_at = _parse_quote_time(stamp)
        if quoted_at is None:
            raise ParsingError(
                f"Unparsable quote time {stamp!r} for {instrument.name}",
                instrument=instrument,
                context={"line": line[:200], "connection": self.connection_id},
            )
        try:
            price = float(price_text)
        except ValueError as e:
            raise ParsingError(
                f"Unparsable price {price_text!r} for {instrument.name}",
                instrument=instrument,
                context={"line": line[:200], "connection": self.connection_id},
            ) from e
        return StockRecord.from_price(price, quoted_at, price_display=price_text)


def _parse_quote_time(stamp: str) -> datetime | None:
    try:
        return datetime.strptime(stamp, _QUOTE_TIME_FORMAT)
    except ValueError:
        return None
