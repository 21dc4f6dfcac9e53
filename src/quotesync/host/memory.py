"""In-memory host model, loadable from and dumpable to YAML.

Stands in for the host accounting application so the download tasks can be
driven from the CLI and from tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from quotesync.core.exceptions import ConfigError
from quotesync.core.models import RELATIVE_TO_TAG, InstrumentKind, StockExchange
from quotesync.host.protocols import Instrument

logger = logging.getLogger(__name__)

# Tags the symbol map reads
EXCHANGE_TAG = "exchange"
TRACKED_TAG = "quotes_tracked"


@dataclass
class MemoryInstrument:
    """A host instrument backed by plain attributes and a tag dict."""

    id: str
    name: str
    kind: InstrumentKind = InstrumentKind.SECURITY
    ticker: str | None = None
    currency_code: str | None = None
    rate: float = 1.0
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def relative_currency_id(self) -> str | None:
        return self.tags.get(RELATIVE_TO_TAG)

    def get_tag(self, key: str) -> str | None:
        return self.tags.get(key)

    def set_tag(self, key: str, value: str) -> None:
        self.tags[key] = value

    def set_rate(self, value: float) -> None:
        self.rate = value


class MemoryCurrencyTable:
    """Ordered collection of instruments keyed by id.

    Parameters
    ----------
    instruments : list[MemoryInstrument]
        Entries in table order.
    base_id : str
        Id of the base currency; must be present in ``instruments``.
    """

    def __init__(self, instruments: list[MemoryInstrument], base_id: str) -> None:
        self._instruments: dict[str, MemoryInstrument] = {}
        for inst in instruments:
            if inst.id in self._instruments:
                raise ValueError(f"Duplicate instrument id: {inst.id!r}")
            self._instruments[inst.id] = inst
        if base_id not in self._instruments:
            raise ValueError(f"Base currency {base_id!r} is not in the table")
        self._base_id = base_id
        self.change_count = 0

    def all_instruments(self) -> list[MemoryInstrument]:
        return list(self._instruments.values())

    def get_by_id(self, instrument_id: str) -> MemoryInstrument | None:
        return self._instruments.get(instrument_id)

    def get_by_code(self, currency_code: str) -> MemoryInstrument | None:
        code = currency_code.strip().upper()
        for inst in self._instruments.values():
            if inst.kind == InstrumentKind.CURRENCY and inst.currency_code == code:
                return inst
        return None

    def base_currency(self) -> MemoryInstrument:
        return self._instruments[self._base_id]

    def fire_change_notification(self) -> None:
        self.change_count += 1


class TagSymbolMap:
    """Symbol map that reads tracking and exchange assignment from tags.

    An instrument is tracked unless its ``quotes_tracked`` tag is "false".
    Its exchange is looked up by the ``exchange`` tag; securities without
    one fall back to ``default_exchange_id`` when given.
    """

    def __init__(
        self,
        exchanges: list[StockExchange],
        default_exchange_id: str | None = None,
    ) -> None:
        self._exchanges = {ex.exchange_id: ex for ex in exchanges}
        self._default_exchange_id = default_exchange_id

    @property
    def exchanges(self) -> list[StockExchange]:
        return list(self._exchanges.values())

    @property
    def default_exchange_id(self) -> str | None:
        return self._default_exchange_id

    def is_tracked(self, instrument: Instrument) -> bool:
        flag = instrument.get_tag(TRACKED_TAG)
        if flag is None:
            return True
        return flag.strip().lower() not in ("false", "0", "no")

    def exchange_for(self, instrument: Instrument) -> StockExchange | None:
        exchange_id = instrument.get_tag(EXCHANGE_TAG) or self._default_exchange_id
        if exchange_id is None:
            return None
        return self._exchanges.get(exchange_id)


class LoggingProgressSink:
    """Progress sink that writes each report to the log."""

    def __init__(self, name: str = "quotesync.progress") -> None:
        self._logger = logging.getLogger(name)
        self.last_percent = 0.0
        self.last_message = ""

    def report(self, percent: float, message: str) -> None:
        self.last_percent = percent
        self.last_message = message
        self._logger.info("[%3.0f%%] %s", percent * 100, message)


@dataclass
class HostModel:
    """A currency table together with its symbol map."""

    table: MemoryCurrencyTable
    symbol_map: TagSymbolMap


def load_host(path: str | Path) -> HostModel:
    """Load a host model from a YAML file.

    Expected shape::

        base_currency: USD
        exchanges:
          - {exchange_id: LSE, utc_offset_hours: 0, currency_code: GBP,
             suffixes: {yahoo: ".L", google: LON}}
        instruments:
          - {id: USD, kind: currency, name: US Dollar, currency_code: USD}
          - {id: VOD, name: Vodafone, ticker: VOD, tags: {exchange: LSE}}
    """
    p = Path(path)
    if not p.exists():
        raise ConfigError(
            f"Instrument file not found: {path}",
            context={"field": "instruments_path", "value": str(path)},
        )
    try:
        with open(p) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse instrument file: {e}",
            context={"field": "instruments_path", "value": str(path)},
        ) from e
    if not isinstance(data, dict):
        raise ConfigError(
            f"Instrument file must be a mapping, got {type(data).__name__}",
            context={"field": "instruments_path", "value": str(path)},
        )
    return host_from_dict(data)


def host_from_dict(data: dict[str, Any]) -> HostModel:
    """Build a host model from an already-parsed mapping."""
    try:
        exchanges = [StockExchange.model_validate(e) for e in data.get("exchanges", [])]
    except ValidationError as e:
        raise ConfigError(f"Invalid exchange entry: {e}") from e

    instruments = [_instrument_from_dict(entry) for entry in data.get("instruments", [])]
    base_id = data.get("base_currency")
    if not base_id:
        raise ConfigError("Instrument file must name a base_currency")
    try:
        table = MemoryCurrencyTable(instruments, base_id=str(base_id))
    except ValueError as e:
        raise ConfigError(str(e), context={"field": "instruments"}) from e

    symbol_map = TagSymbolMap(exchanges, default_exchange_id=data.get("default_exchange"))
    logger.debug(
        "Loaded %d instruments and %d exchanges", len(instruments), len(exchanges)
    )
    return HostModel(table=table, symbol_map=symbol_map)


def _instrument_from_dict(entry: dict[str, Any]) -> MemoryInstrument:
    if "id" not in entry:
        raise ConfigError(f"Instrument entry without id: {entry!r}")
    try:
        kind = InstrumentKind(entry.get("kind", InstrumentKind.SECURITY))
    except ValueError as e:
        raise ConfigError(
            f"Unknown instrument kind {entry.get('kind')!r}",
            context={"field": "kind", "value": entry.get("kind")},
        ) from e
    code = entry.get("currency_code")
    return MemoryInstrument(
        id=str(entry["id"]),
        name=str(entry.get("name", entry["id"])),
        kind=kind,
        ticker=entry.get("ticker"),
        currency_code=str(code).upper() if code else None,
        rate=float(entry.get("rate", 1.0)),
        tags={str(k): str(v) for k, v in (entry.get("tags") or {}).items()},
    )


def dump_host(host: HostModel, path: str | Path) -> None:
    """Write a host model back to YAML in the shape load_host() reads."""
    data: dict[str, Any] = {
        "base_currency": host.table.base_currency().id,
        "exchanges": [
            ex.model_dump(mode="json") for ex in host.symbol_map.exchanges
        ],
        "instruments": [],
    }
    if host.symbol_map.default_exchange_id:
        data["default_exchange"] = host.symbol_map.default_exchange_id
    for inst in host.table.all_instruments():
        entry: dict[str, Any] = {
            "id": inst.id,
            "name": inst.name,
            "kind": inst.kind.value,
            "rate": inst.rate,
        }
        if inst.ticker:
            entry["ticker"] = inst.ticker
        if inst.currency_code:
            entry["currency_code"] = inst.currency_code
        if inst.tags:
            entry["tags"] = dict(inst.tags)
        data["instruments"].append(entry)

    with open(path, "w") as f:
        yaml.safe_dump(data, f, sort_keys=False)
