"""Google Finance connection — price history only.

Request parameters:
    q          symbol, optionally prefixed with the market (``LON:VOD``)
    startdate  first day, formatted ``Jun+1,+2010``
    enddate    last day, same format
    output     always ``csv``

The dates are sent unencoded; the service rejects percent-encoded commas.
Response dates look like ``17-Jun-10``.
"""

from __future__ import annotations

from datetime import date
from typing import ClassVar
from urllib.parse import quote

from quotesync.connections.base import BaseConnection, ConnectionContext, split_symbol_override
from quotesync.core.config import HttpConfig
from quotesync.core.models import DateRange, StockExchange
from quotesync.host.protocols import CurrencyTable, SymbolMap
from quotesync.host.store import SnapshotStore

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_request_date(day: date) -> str:
    """Format a date the way the history endpoint expects (``Jun+19,+2010``)."""
    return f"{_MONTHS[day.month - 1]}+{day.day},+{day.year}"


class GoogleConnection(BaseConnection):
    """Historical prices from Google Finance."""

    connection_id: ClassVar[str] = "google"
    supports_history: ClassVar[bool] = True
    supports_current_price: ClassVar[bool] = False
    history_date_format: ClassVar[str] = "%d-%b-%y"
    history_close_column: ClassVar[int] = 4

    def __init__(
        self,
        table: CurrencyTable,
        symbol_map: SymbolMap,
        history_url: str,
        http: HttpConfig | None = None,
        snapshot_store: SnapshotStore | None = None,
        display_name: str = "Google Finance",
    ) -> None:
        super().__init__(
            table,
            symbol_map,
            http=http,
            snapshot_store=snapshot_store,
            display_name=display_name,
        )
        self._history_url = history_url

    @classmethod
    def from_context(cls, context: ConnectionContext) -> GoogleConnection:
        return cls(
            context.table,
            context.symbol_map,
            history_url=context.config.providers.google_history_url,
            http=context.config.http,
            snapshot_store=context.snapshot_store,
        )

    def get_full_ticker_symbol(
        self, raw_symbol: str | None, exchange: StockExchange | None
    ) -> str | None:
        """Prefix the exchange's market code (``VOD`` on LSE → ``LON:VOD``).

        A symbol that already names its market keeps it, with any trailing
        currency override clipped off.
        """
        if raw_symbol is None or not raw_symbol.strip():
            return None
        ticker = raw_symbol.strip().upper()
        if ":" in ticker:
            symbol, _ = split_symbol_override(ticker, ":")
            return symbol
        prefix = exchange.provider_suffix(self.connection_id) if exchange else None
        if not prefix:
            return ticker
        return f"{prefix}:{ticker}"

    def get_currency_code_for_quote(
        self, raw_symbol: str | None, exchange: StockExchange | None
    ) -> str | None:
        if raw_symbol is None or not raw_symbol.strip():
            return None
        _, override = split_symbol_override(raw_symbol.strip().upper(), ":")
        if override:
            return override
        return super().get_currency_code_for_quote(raw_symbol, exchange)

    def history_request(self, full_ticker: str, date_range: DateRange) -> tuple[str, None]:
        url = (
            f"{self._history_url}?q={quote(full_ticker, safe='')}"
            f"&startdate={format_request_date(date_range.start_date)}"
            f"&enddate={format_request_date(date_range.end_date)}"
            "&output=csv"
        )
        return url, None
