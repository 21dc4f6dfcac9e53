"""Run loop shared by the download tasks.

A run walks the host currency table once, updating eligible instruments one
at a time. Provider failures are absorbed per instrument; anything else
ends the run as failed without undoing updates already committed.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from quotesync.core.conversions import system_utc_offset_hours
from quotesync.core.models import DownloadResult, RunState, RunSummary
from quotesync.host.protocols import CurrencyTable, Instrument, ProgressSink, SymbolMap

logger = logging.getLogger(__name__)

# Smallest progress fraction reported, so the first item never shows 0%
MIN_PROGRESS = 0.01


class CancelToken:
    """Cooperative cancellation flag, safe to trip from another thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class _NullProgress:
    def report(self, percent: float, message: str) -> None:
        pass


class BaseDownloadTask:
    """Template for a single download run over the currency table.

    Subclasses decide which instruments are eligible and how one is updated.
    The host must not start overlapping runs over the same table.
    """

    name = "Download"
    title = "prices"

    def __init__(
        self,
        table: CurrencyTable,
        symbol_map: SymbolMap,
        progress: ProgressSink | None = None,
        cancel_token: CancelToken | None = None,
        local_offset_hours: float | None = None,
    ) -> None:
        self._table = table
        self._symbol_map = symbol_map
        self._progress_sink: ProgressSink = progress or _NullProgress()
        self._cancel = cancel_token or CancelToken()
        self._local_offset = (
            local_offset_hours
            if local_offset_hours is not None
            else system_utc_offset_hours()
        )
        self._progress = 0.0
        self.summary = RunSummary()

    def __str__(self) -> str:
        return self.name

    @property
    def state(self) -> RunState:
        return self.summary.state

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def cancel_token(self) -> CancelToken:
        return self._cancel

    def cancel(self) -> None:
        self._cancel.cancel()

    # --- Hooks ---

    def is_eligible(self, instrument: Instrument) -> bool:
        raise NotImplementedError

    async def update_instrument(self, instrument: Instrument) -> DownloadResult:
        raise NotImplementedError

    # --- Run ---

    def report(self, message: str, percent: float | None = None) -> None:
        self._progress_sink.report(self._progress if percent is None else percent, message)

    async def run(self) -> RunSummary:
        """Execute one full run and return its summary."""
        summary = RunSummary(state=RunState.RUNNING, started_at=datetime.now())
        self.summary = summary
        self.report(f"Downloading {self.title}", percent=0.0)

        try:
            instruments = list(self._table.all_instruments())
            summary.total = len(instruments)
            cancelled = False
            for idx, instrument in enumerate(instruments):
                if self._cancel.cancelled:
                    cancelled = True
                    logger.info("%s cancelled after %d of %d entries", self.name, idx, summary.total)
                    break
                self._progress = max(idx / summary.total, MIN_PROGRESS)
                if not self.is_eligible(instrument):
                    continue

                result = await self.update_instrument(instrument)
                summary.record(result)
                if not result.skipped and result.log_message:
                    logger.info(result.log_message)
                self.report(_status_line(result))
            summary.state = RunState.CANCELLED if cancelled else RunState.COMPLETED
        except Exception as e:
            logger.exception("Error while downloading %s", self.title)
            summary.state = RunState.FAILED
            summary.message = f"Error downloading {self.title}: {e}"
            self.report(summary.message, percent=0.0)
        finally:
            self._progress = 0.0
            summary.finished_at = datetime.now()
            self._table.fire_change_notification()

        if summary.state != RunState.FAILED:
            summary.message = self.completion_message(summary)
            self.report(summary.message, percent=1.0)
            logger.info(summary.message)
        logger.debug("%s summary: %s", self.name, summary.to_dict())
        return summary

    def completion_message(self, summary: RunSummary) -> str:
        if summary.all_clear and summary.state != RunState.CANCELLED:
            return f"Finished downloading {self.title}"
        text = (
            f"Update of {self.title} complete with {summary.skipped} skipped, "
            f"{summary.errored} errors and {summary.succeeded} quotes obtained"
        )
        if summary.state == RunState.CANCELLED:
            text += " (cancelled)"
        return text


def _status_line(result: DownloadResult) -> str:
    if result.skipped:
        return f"Skipped {result.display_name}"
    if result.errored:
        return f"Error updating {result.display_name}"
    return f"Downloaded {result.display_name}"
