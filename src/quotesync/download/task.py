"""Security quotes download task.

For every tracked security the task asks the history connection for recent
dated prices and the current-price connection for the latest quote, then
hands both outcomes to the reconciliation rules to decide what to commit.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import TypeVar

from quotesync.connections.base import (
    Connection,
    ConnectionContext,
    ConnectionRegistry,
    registry,
)
from quotesync.core.config import ConnectionsConfig, QuoteSyncConfig
from quotesync.core.exceptions import ConnectionUnavailableError, DownloadError
from quotesync.core.models import (
    DateRange,
    DownloadResult,
    FetchResult,
    FetchStatus,
    InstrumentKind,
    StockHistory,
    StockRecord,
)
from quotesync.download.base import BaseDownloadTask, CancelToken
from quotesync.download.reconcile import (
    CandidateSource,
    build_price_display_text,
    build_price_log_text,
    commit_price,
    historical_candidate,
    select_candidate,
)
from quotesync.host.protocols import CurrencyTable, Instrument, ProgressSink, SymbolMap
from quotesync.host.store import SnapshotStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ActiveConnections:
    """Connections serving each capability for one run.

    A capability is inactive when its connection is None. When the user
    enabled a capability but its connection cannot be built, the matching
    ``*_unavailable`` field carries the reason.
    """

    history: Connection | None = None
    current_price: Connection | None = None
    history_unavailable: str | None = None
    current_price_unavailable: str | None = None

    @property
    def any_active(self) -> bool:
        return any(
            (
                self.history,
                self.current_price,
                self.history_unavailable,
                self.current_price_unavailable,
            )
        )


def resolve_connections(
    config: ConnectionsConfig,
    context: ConnectionContext,
    connection_registry: ConnectionRegistry = registry,
) -> ActiveConnections:
    """Build the connections named in config, sharing one instance per id."""
    built: dict[str, Connection] = {}

    def build(name: str) -> Connection:
        if name not in built:
            built[name] = connection_registry.create(name, context)
        return built[name]

    history = current = None
    history_unavailable = current_unavailable = None

    if config.history_enabled and config.history is not None:
        if config.history not in connection_registry:
            history_unavailable = f"No connection named '{config.history}' for price history"
        else:
            conn = build(config.history)
            if conn.can_get_history():
                history = conn
            else:
                logger.info("%s does not provide price history", conn.display_name)

    if config.current_price_enabled and config.current_price is not None:
        if config.current_price not in connection_registry:
            current_unavailable = (
                f"No connection named '{config.current_price}' for current prices"
            )
        else:
            conn = build(config.current_price)
            if conn.can_get_current_price():
                current = conn
            else:
                logger.info("%s does not provide current prices", conn.display_name)

    return ActiveConnections(history, current, history_unavailable, current_unavailable)


async def attempt(call: Awaitable[T | None]) -> FetchResult[T]:
    """Await a provider call and fold its outcome into a FetchResult."""
    try:
        value = await call
    except DownloadError as e:
        return FetchResult.failed(e)
    if value is None:
        return FetchResult.empty()
    return FetchResult.ok(value)


class DownloadQuotesTask(BaseDownloadTask):
    """Downloads price history and current price for securities.

    Parameters
    ----------
    table : CurrencyTable
        Host currency table; securities in it are updated in place.
    symbol_map : SymbolMap
        Decides which securities are tracked and where they trade.
    connections : ActiveConnections
        The history and current-price connections for this run.
    history_days : int
        Length of the history window ending today.
    """

    name = "Download_Security_Quotes"
    title = "security quotes"

    def __init__(
        self,
        table: CurrencyTable,
        symbol_map: SymbolMap,
        connections: ActiveConnections,
        history_days: int = 5,
        progress: ProgressSink | None = None,
        cancel_token: CancelToken | None = None,
        local_offset_hours: float | None = None,
    ) -> None:
        super().__init__(
            table,
            symbol_map,
            progress=progress,
            cancel_token=cancel_token,
            local_offset_hours=local_offset_hours,
        )
        self._connections = connections
        self._history_days = history_days

    @classmethod
    def from_config(
        cls,
        config: QuoteSyncConfig,
        table: CurrencyTable,
        symbol_map: SymbolMap,
        progress: ProgressSink | None = None,
        snapshot_store: SnapshotStore | None = None,
        cancel_token: CancelToken | None = None,
        connection_registry: ConnectionRegistry = registry,
    ) -> DownloadQuotesTask:
        context = ConnectionContext(config, table, symbol_map, snapshot_store)
        connections = resolve_connections(config.connections, context, connection_registry)
        return cls(
            table,
            symbol_map,
            connections,
            history_days=config.download.history_days,
            progress=progress,
            cancel_token=cancel_token,
            local_offset_hours=config.download.local_utc_offset_hours,
        )

    def is_eligible(self, instrument: Instrument) -> bool:
        return instrument.kind == InstrumentKind.SECURITY

    async def update_instrument(self, instrument: Instrument) -> DownloadResult:
        return await self.update_security(instrument)

    async def update_security(self, security: Instrument) -> DownloadResult:
        """Download and reconcile prices for one security."""
        result = DownloadResult(display_name=security.name)
        if not self._symbol_map.is_tracked(security):
            result.skipped = True
            return result

        active = self._connections
        if not active.any_active:
            result.skipped = True
            result.log_message = f"No active price connection for {security.name}"
            return result

        date_range = DateRange.ending_today(self._history_days)
        logger.info("Downloading price of %s for dates %s", security.name, date_range.format())

        # --- history ---
        history: FetchResult[StockHistory] | None = None
        if active.history_unavailable:
            self._record_history_error(
                result,
                security,
                ConnectionUnavailableError(
                    active.history_unavailable,
                    instrument=security,
                    context={"capability": "history"},
                ),
            )
        elif active.history is not None:
            history = await attempt(active.history.get_history(security, date_range, True))
            if history.status == FetchStatus.EMPTY:
                result.skipped = True
                result.log_message = f"No history obtained for security {security.name}"
                return result
            if history.status == FetchStatus.FAILED:
                self._record_history_error(result, security, history.error)
            else:
                self._record_history(result, security, history.value)

        found_price = history is not None and history.succeeded and (
            historical_candidate(history.value) is not None
        )

        # --- current price ---
        current: FetchResult[StockRecord] | None = None
        if active.current_price_unavailable:
            self._record_current_error(
                result,
                security,
                ConnectionUnavailableError(
                    active.current_price_unavailable,
                    instrument=security,
                    context={"capability": "current_price"},
                ),
            )
        elif active.current_price is not None:
            # a historical price already covers today; otherwise keep the quote as history
            auto_save = not found_price
            if auto_save:
                logger.info("Automatically saving current price of %s", security.name)
            current = await attempt(active.current_price.get_current_price(security, auto_save))
            if current.status == FetchStatus.EMPTY:
                if not found_price:
                    result.skipped = True
                    result.log_message = (
                        f"No current price obtained for security {security.name}"
                    )
                    return result
                result.current_result = "No data"
            elif current.status == FetchStatus.FAILED:
                self._record_current_error(result, security, current.error)
            else:
                record = current.value
                result.current_error = not record.is_valid
                result.current_result = record.price_display

        # --- reconcile ---
        exchange = self._symbol_map.exchange_for(security)
        candidate = select_candidate(history, current, exchange, self._local_offset)
        if candidate is None:
            return result

        price_connection = (
            active.current_price
            if candidate.source == CandidateSource.CURRENT
            else active.history
        )
        price_currency = self._price_currency(security, price_connection)
        outcome = commit_price(security, candidate, price_currency, self._local_offset)

        self.report(build_price_display_text(price_currency, result.display_name, candidate))
        if not result.log_message:
            result.log_message = build_price_log_text(
                price_currency, result.display_name, candidate, outcome.updated
            )
        return result

    # --- Helpers ---

    def _price_currency(
        self, security: Instrument, connection: Connection | None
    ) -> Instrument:
        if connection is not None:
            return connection.get_price_currency(security)
        # no connection to ask; fall back to the user's relative-to currency
        relative_id = security.relative_currency_id
        if relative_id:
            currency = self._table.get_by_id(relative_id)
            if currency is not None:
                return currency
        return self._table.base_currency()

    def _record_history(
        self, result: DownloadResult, security: Instrument, history: StockHistory
    ) -> None:
        # per-security flags, not record tallies
        if history.error_count > 0:
            result.history_error_count = 1
        if history.record_count > 0:
            result.history_record_count = 1
            result.history_result = "Success"
        else:
            result.history_result = "Error"
            result.log_message = f"No history records returned for security {security.name}"

    def _record_history_error(
        self, result: DownloadResult, security: Instrument, error: Exception | None
    ) -> None:
        name = _error_subject(error, security)
        self.report(f"Error downloading price history for {name}: {error}")
        result.history_error_count = 1
        result.history_result = str(error)
        if not result.log_message:
            result.log_message = f"Error downloading historical prices for {name}: {error}"

    def _record_current_error(
        self, result: DownloadResult, security: Instrument, error: Exception | None
    ) -> None:
        name = _error_subject(error, security)
        self.report(f"Error downloading current price for {name}: {error}")
        result.current_error = True
        result.current_result = str(error)
        if not result.log_message:
            result.log_message = f"Error downloading current price for {name}: {error}"


def _error_subject(error: Exception | None, fallback: Instrument) -> str:
    instrument = getattr(error, "instrument", None) or fallback
    return instrument.name
