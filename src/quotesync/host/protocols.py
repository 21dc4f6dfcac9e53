"""Interfaces into the host application's accounting model.

The download core never creates or destroys instruments. It reads them
through these protocols and mutates only a rate and a few tags.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from quotesync.core.models import InstrumentKind, StockExchange


@runtime_checkable
class Instrument(Protocol):
    """A security or currency tracked by the host."""

    @property
    def id(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def kind(self) -> InstrumentKind: ...

    @property
    def ticker(self) -> str | None: ...

    @property
    def currency_code(self) -> str | None: ...

    @property
    def rate(self) -> float:
        """Units of this instrument per one unit of the base currency."""
        ...

    @property
    def relative_currency_id(self) -> str | None: ...

    def get_tag(self, key: str) -> str | None: ...

    def set_tag(self, key: str, value: str) -> None: ...

    def set_rate(self, value: float) -> None: ...


@runtime_checkable
class CurrencyTable(Protocol):
    """The host's table of currencies and securities."""

    def all_instruments(self) -> Sequence[Instrument]: ...

    def get_by_id(self, instrument_id: str) -> Instrument | None: ...

    def get_by_code(self, currency_code: str) -> Instrument | None: ...

    def base_currency(self) -> Instrument: ...

    def fire_change_notification(self) -> None: ...


@runtime_checkable
class SymbolMap(Protocol):
    """Which instruments take part in downloads, and where they trade."""

    def is_tracked(self, instrument: Instrument) -> bool: ...

    def exchange_for(self, instrument: Instrument) -> StockExchange | None: ...


@runtime_checkable
class ProgressSink(Protocol):
    """Fire-and-forget progress channel."""

    def report(self, percent: float, message: str) -> None: ...
