"""Connection protocol, registry, and the shared CSV-over-HTTP implementation.

Architecture
------------
A connection is a capability object for one external price provider:

    Instrument → Connection → StockHistory | StockRecord → reconciliation

- **Connection** is the protocol every provider satisfies. Capabilities are
  advertised through ``supports_history`` / ``supports_current_price``;
  callers check them before invoking an operation.

- **ConnectionRegistry** maps provider identifiers to factories so the
  active provider is chosen by configuration, not by subclassing.

- **BaseConnection** carries everything the CSV providers share: the HTTP
  transport, history line parsing against a provider-declared date format,
  price-currency resolution, and snapshot saving.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Protocol, runtime_checkable

import httpx
from aiolimiter import AsyncLimiter

from quotesync.core.config import HttpConfig, QuoteSyncConfig
from quotesync.core.conversions import convert_to_base_rate
from quotesync.core.exceptions import DownloadError
from quotesync.core.models import (
    DateRange,
    PriceSnapshot,
    StockExchange,
    StockHistory,
    StockRecord,
)
from quotesync.host.protocols import CurrencyTable, Instrument, SymbolMap
from quotesync.host.store import SnapshotStore

logger = logging.getLogger(__name__)


@runtime_checkable
class Connection(Protocol):
    """Capability contract for a price provider."""

    connection_id: str
    display_name: str
    supports_history: bool
    supports_current_price: bool

    def can_get_history(self) -> bool: ...

    def can_get_current_price(self) -> bool: ...

    async def get_history(
        self,
        instrument: Instrument,
        date_range: DateRange,
        full_history: bool,
    ) -> StockHistory | None:
        """Fetch dated prices. None means the provider sent no data.

        Raises
        ------
        DownloadError
            Network failure, HTTP non-success, or an unusable body.
        """
        ...

    async def get_current_price(
        self,
        instrument: Instrument,
        auto_save_as_history: bool,
    ) -> StockRecord | None:
        """Fetch the latest quote. None means the provider sent no data.

        Raises
        ------
        DownloadError
            Network failure, HTTP non-success, or an unusable body.
        """
        ...

    def get_price_currency(self, instrument: Instrument) -> Instrument: ...

    def get_full_ticker_symbol(
        self, raw_symbol: str | None, exchange: StockExchange | None
    ) -> str | None: ...


@dataclass(frozen=True)
class ConnectionContext:
    """Everything a connection factory needs to build a connection."""

    config: QuoteSyncConfig
    table: CurrencyTable
    symbol_map: SymbolMap
    snapshot_store: SnapshotStore | None = None


ConnectionFactory = Callable[[ConnectionContext], Connection]


class ConnectionRegistry:
    """Registry of available connections."""

    def __init__(self) -> None:
        self._factories: dict[str, ConnectionFactory] = {}

    def register(self, name: str, factory: ConnectionFactory) -> None:
        if name in self._factories:
            raise ValueError(
                f"Connection '{name}' is already registered. Use replace() to override."
            )
        self._factories[name] = factory

    def replace(self, name: str, factory: ConnectionFactory) -> None:
        if name not in self._factories:
            raise KeyError(f"Connection '{name}' is not registered.")
        self._factories[name] = factory

    def get(self, name: str) -> ConnectionFactory:
        return self._factories[name]

    def list_names(self) -> list[str]:
        return list(self._factories.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def create(self, name: str, context: ConnectionContext) -> Connection:
        """Instantiate the connection registered under ``name``."""
        return self.get(name)(context)


class HttpTransport:
    """Rate-limited HTTP GET returning response text.

    Parameters
    ----------
    http : HttpConfig
        Timeout, requests per second, and user agent.
    connection_id : str
        Included in error context for diagnostics.
    """

    def __init__(self, http: HttpConfig, connection_id: str) -> None:
        self._timeout = http.timeout
        self._user_agent = http.user_agent
        self._limiter = AsyncLimiter(max_rate=http.rate_limit, time_period=1.0)
        self._connection_id = connection_id

    async def get_text(
        self,
        url: str,
        params: dict[str, str] | None = None,
        instrument: Instrument | None = None,
    ) -> str | None:
        """GET ``url`` and return the body, or None if the body is blank.

        Raises
        ------
        DownloadError
            On transport errors and non-2xx responses.
        """
        await self._limiter.acquire()
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(
                    url,
                    params=params,
                    headers={"User-Agent": self._user_agent},
                )
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "%s HTTP error for %s: %s",
                self._connection_id,
                _name_of(instrument),
                e.response.status_code,
            )
            raise DownloadError(
                f"HTTP {e.response.status_code} from {self._connection_id}",
                instrument=instrument,
                context={
                    "url": str(e.request.url),
                    "status_code": e.response.status_code,
                    "connection": self._connection_id,
                },
            ) from e
        except httpx.RequestError as e:
            logger.error(
                "%s request error for %s: %s", self._connection_id, _name_of(instrument), e
            )
            raise DownloadError(
                f"Request to {self._connection_id} failed: {e}",
                instrument=instrument,
                context={"url": url, "connection": self._connection_id},
            ) from e

        text = resp.text
        if not text.strip():
            return None
        return text


class BaseConnection:
    """Shared implementation for comma-separated-value price providers.

    Subclasses declare their URLs and formats and supply the ticker symbol
    conventions; parsing and currency resolution live here.
    """

    connection_id: ClassVar[str] = "base"
    supports_history: ClassVar[bool] = False
    supports_current_price: ClassVar[bool] = False

    # strptime pattern for the date column of history responses
    history_date_format: ClassVar[str] = "%Y-%m-%d"
    history_close_column: ClassVar[int] = 4

    def __init__(
        self,
        table: CurrencyTable,
        symbol_map: SymbolMap,
        http: HttpConfig | None = None,
        snapshot_store: SnapshotStore | None = None,
        display_name: str | None = None,
    ) -> None:
        self._table = table
        self._symbol_map = symbol_map
        self._snapshots = snapshot_store
        self._transport = HttpTransport(http or HttpConfig(), self.connection_id)
        self.display_name = display_name or self.connection_id.title()

    def __str__(self) -> str:
        return self.display_name

    def can_get_history(self) -> bool:
        return self.supports_history

    def can_get_current_price(self) -> bool:
        return self.supports_current_price

    # --- Provider hooks ---

    def history_request(
        self, full_ticker: str, date_range: DateRange
    ) -> tuple[str, dict[str, str] | None] | None:
        """Return (url, params) for a history request, or None if unsupported."""
        return None

    def current_price_request(
        self, full_ticker: str
    ) -> tuple[str, dict[str, str] | None] | None:
        """Return (url, params) for a quote request, or None if unsupported."""
        return None

    def parse_current_price(self, body: str, instrument: Instrument) -> StockRecord | None:
        raise NotImplementedError

    def get_full_ticker_symbol(
        self, raw_symbol: str | None, exchange: StockExchange | None
    ) -> str | None:
        raise NotImplementedError

    def get_currency_code_for_quote(
        self, raw_symbol: str | None, exchange: StockExchange | None
    ) -> str | None:
        if exchange is None:
            return None
        return exchange.currency_code

    # --- Operations ---

    async def get_history(
        self,
        instrument: Instrument,
        date_range: DateRange,
        full_history: bool,
    ) -> StockHistory | None:
        full_ticker = self._require_ticker(instrument)
        request = self.history_request(full_ticker, date_range)
        if request is None:
            raise DownloadError(
                f"{self.display_name} does not provide price history",
                instrument=instrument,
                context={"connection": self.connection_id},
            )
        url, params = request
        body = await self._transport.get_text(url, params, instrument)
        if body is None:
            logger.info("%s returned no history for %s", self.display_name, instrument.name)
            return None

        history = self.parse_history(body)
        logger.debug(
            "Parsed %d history records (%d errors) for %s",
            history.record_count,
            history.error_count,
            instrument.name,
        )
        if full_history and history.records:
            await self._save_records(instrument, history.records)
        return history

    async def get_current_price(
        self,
        instrument: Instrument,
        auto_save_as_history: bool,
    ) -> StockRecord | None:
        full_ticker = self._require_ticker(instrument)
        request = self.current_price_request(full_ticker)
        if request is None:
            raise DownloadError(
                f"{self.display_name} does not provide current prices",
                instrument=instrument,
                context={"connection": self.connection_id},
            )
        url, params = request
        body = await self._transport.get_text(url, params, instrument)
        if body is None:
            logger.info("%s returned no quote for %s", self.display_name, instrument.name)
            return None

        record = self.parse_current_price(body, instrument)
        if record is not None and record.is_valid and auto_save_as_history:
            await self._save_records(instrument, [record])
        return record

    def get_price_currency(self, instrument: Instrument) -> Instrument:
        """Resolve the currency the provider's raw price is quoted in.

        Order: explicit override in the ticker, the exchange's currency, the
        instrument's relative-to currency, then the base currency.
        """
        exchange = self._symbol_map.exchange_for(instrument)
        code = self.get_currency_code_for_quote(instrument.ticker, exchange)
        if code:
            currency = self._table.get_by_code(code)
            if currency is not None:
                return currency
            logger.warning(
                "Price currency %s for %s is not in the currency table",
                code,
                instrument.name,
            )
        relative_id = instrument.relative_currency_id
        if relative_id:
            currency = self._table.get_by_id(relative_id)
            if currency is not None:
                return currency
        return self._table.base_currency()

    # --- Parsing ---

    def parse_history(self, body: str) -> StockHistory:
        """Parse a CSV history body; bad lines are counted, not fatal."""
        history = StockHistory()
        for line in body.lstrip("\ufeff").splitlines():
            line = line.strip()
            if not line:
                continue
            fields = next(csv.reader([line]))
            if fields[0].strip().lower().startswith("date"):
                continue
            try:
                history.add_record(self._parse_history_fields(fields))
            except (ValueError, IndexError):
                logger.debug("Skipping malformed history line: %s", line[:80])
                history.add_error()
        return history

    def _parse_history_fields(self, fields: list[str]) -> StockRecord:
        day = datetime.strptime(fields[0].strip(), self.history_date_format)
        price_text = fields[self.history_close_column].strip()
        price = float(price_text)
        if price <= 0:
            raise ValueError(f"non-positive close price {price_text!r}")
        return StockRecord.from_price(price, day, price_display=price_text)

    # --- Helpers ---

    def _require_ticker(self, instrument: Instrument) -> str:
        exchange = self._symbol_map.exchange_for(instrument)
        full_ticker = self.get_full_ticker_symbol(instrument.ticker, exchange)
        if full_ticker is None:
            raise DownloadError(
                f"No ticker symbol for {instrument.name}",
                instrument=instrument,
                context={"connection": self.connection_id},
            )
        return full_ticker

    async def _save_records(self, instrument: Instrument, records: list[StockRecord]) -> None:
        if self._snapshots is None:
            return
        price_currency = self.get_price_currency(instrument)
        snapshots = [
            PriceSnapshot(
                instrument_id=instrument.id,
                date=r.timestamp.date(),
                rate=convert_to_base_rate(r.close_rate, price_currency),
                source=self.connection_id,
            )
            for r in records
            if r.is_valid
        ]
        await self._snapshots.save_snapshots(snapshots)


def split_symbol_override(symbol: str, separator: str) -> tuple[str, str | None]:
    """Split ``VOD.L-GBX`` style symbols into (``VOD.L``, ``GBX``).

    The currency override is the text after the first '-' that follows the
    last ``separator``. Symbols without a separator carry no override.
    """
    sep_idx = symbol.rfind(separator)
    if sep_idx < 0:
        return symbol, None
    dash_idx = symbol.find("-", sep_idx)
    if dash_idx < 0:
        return symbol, None
    override = symbol[dash_idx + 1 :].strip()
    return symbol[:dash_idx], (override.upper() or None)


def _name_of(instrument: Any) -> str:
    return getattr(instrument, "name", None) or "unknown instrument"


# Module-level singleton registry
registry = ConnectionRegistry()
