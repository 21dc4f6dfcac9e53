"""Currency exchange-rate download task."""

from __future__ import annotations

import logging
from datetime import date, datetime, time

from quotesync.connections.fx import FXConnection
from quotesync.core.config import QuoteSyncConfig
from quotesync.core.exceptions import DownloadError
from quotesync.core.models import RATE_DATE_TAG, DownloadResult, InstrumentKind
from quotesync.download.base import BaseDownloadTask, CancelToken
from quotesync.download.reconcile import CandidateSource, PriceCandidate, commit_price
from quotesync.host.protocols import CurrencyTable, Instrument, ProgressSink, SymbolMap

logger = logging.getLogger(__name__)


class DownloadRatesTask(BaseDownloadTask):
    """Updates every tracked non-base currency against the base currency."""

    name = "Download_Currency_Rates"
    title = "currency exchange rates"

    def __init__(
        self,
        table: CurrencyTable,
        symbol_map: SymbolMap,
        fx: FXConnection,
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
        self._fx = fx

    @classmethod
    def from_config(
        cls,
        config: QuoteSyncConfig,
        table: CurrencyTable,
        symbol_map: SymbolMap,
        progress: ProgressSink | None = None,
        cancel_token: CancelToken | None = None,
    ) -> DownloadRatesTask:
        return cls(
            table,
            symbol_map,
            FXConnection.from_config(config),
            progress=progress,
            cancel_token=cancel_token,
            local_offset_hours=config.download.local_utc_offset_hours,
        )

    def is_eligible(self, instrument: Instrument) -> bool:
        return (
            instrument.kind == InstrumentKind.CURRENCY
            and instrument.id != self._table.base_currency().id
        )

    async def update_instrument(self, instrument: Instrument) -> DownloadResult:
        result = DownloadResult(display_name=instrument.name)
        if not self._symbol_map.is_tracked(instrument):
            result.skipped = True
            return result

        base = self._table.base_currency()
        code = instrument.currency_code or ""
        try:
            rate = await self._fx.get_current_rate(code, base.currency_code or "")
        except DownloadError as e:
            self.report(f"Error downloading rate for {instrument.name}: {e}")
            result.current_error = True
            result.current_result = str(e)
            result.log_message = f"Error downloading exchange rate for {instrument.name}: {e}"
            return result

        if rate is None:
            result.skipped = True
            result.log_message = f"No exchange rate obtained for {instrument.name}"
            return result
        if rate.rate <= 0:
            result.current_error = True
            result.current_result = f"Invalid rate {rate.rate}"
            result.log_message = f"Invalid exchange rate {rate.rate} for {instrument.name}"
            return result

        # undated rates count as of the start of the download day
        candidate = PriceCandidate(
            close_rate=rate.rate,
            timestamp=rate.timestamp or datetime.combine(date.today(), time.min),
            source=CandidateSource.CURRENT,
        )
        outcome = commit_price(
            instrument, candidate, base, self._local_offset, tag=RATE_DATE_TAG
        )
        result.current_result = f"{rate.rate:g}"
        if outcome.updated:
            result.log_message = (
                f"Exchange rate for {instrument.name} as of "
                f"{candidate.timestamp:%Y-%m-%d %H:%M}: {rate.rate:g} per {base.currency_code}"
            )
        else:
            result.log_message = f"Exchange rate for {instrument.name} is already current"
        return result
