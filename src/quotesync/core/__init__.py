"""quotesync.core — Foundation types, config, and exceptions."""

from quotesync.core.config import (
    ConnectionsConfig,
    DownloadConfig,
    HttpConfig,
    ProvidersConfig,
    QuoteSyncConfig,
    StorageConfig,
    load_config,
)
from quotesync.core.exceptions import (
    ConfigError,
    ConnectionUnavailableError,
    DownloadError,
    ParsingError,
    QuoteSyncError,
    StorageError,
)
from quotesync.core.models import (
    PRICE_DATE_TAG,
    RATE_DATE_TAG,
    RELATIVE_TO_TAG,
    ConnectionId,
    CurrencyCode,
    DateRange,
    DownloadResult,
    ExchangeRate,
    FetchResult,
    FetchStatus,
    InstrumentId,
    InstrumentKind,
    PriceSnapshot,
    RunState,
    RunSummary,
    StockExchange,
    StockHistory,
    StockRecord,
)

__all__ = [
    # Type aliases and tag keys
    "ConnectionId",
    "CurrencyCode",
    "InstrumentId",
    "PRICE_DATE_TAG",
    "RATE_DATE_TAG",
    "RELATIVE_TO_TAG",
    # Enums
    "FetchStatus",
    "InstrumentKind",
    "RunState",
    # Models
    "DateRange",
    "DownloadResult",
    "ExchangeRate",
    "FetchResult",
    "PriceSnapshot",
    "RunSummary",
    "StockExchange",
    "StockHistory",
    "StockRecord",
    # Config
    "QuoteSyncConfig",
    "ConnectionsConfig",
    "DownloadConfig",
    "HttpConfig",
    "ProvidersConfig",
    "StorageConfig",
    "load_config",
    # Exceptions
    "QuoteSyncError",
    "ConfigError",
    "DownloadError",
    "ParsingError",
    "ConnectionUnavailableError",
    "StorageError",
]
