"""quotesync.host — Narrow interfaces into the host accounting model.

The host owns instruments, exchanges, and price history. The download core
talks to it only through the protocols defined here. ``memory`` provides a
YAML-backed stand-in; ``store`` provides a SQLite snapshot store.
"""

from quotesync.host.memory import (
    EXCHANGE_TAG,
    TRACKED_TAG,
    HostModel,
    LoggingProgressSink,
    MemoryCurrencyTable,
    MemoryInstrument,
    TagSymbolMap,
    dump_host,
    host_from_dict,
    load_host,
)
from quotesync.host.protocols import CurrencyTable, Instrument, ProgressSink, SymbolMap
from quotesync.host.store import SnapshotStore, SqliteSnapshotStore

__all__ = [
    # Protocols
    "CurrencyTable",
    "Instrument",
    "ProgressSink",
    "SnapshotStore",
    "SymbolMap",
    # In-memory host
    "EXCHANGE_TAG",
    "TRACKED_TAG",
    "HostModel",
    "LoggingProgressSink",
    "MemoryCurrencyTable",
    "MemoryInstrument",
    "TagSymbolMap",
    "dump_host",
    "host_from_dict",
    "load_host",
    # Storage
    "SqliteSnapshotStore",
]
