"""Shared pytest fixtures for quotesync."""

import pytest

from quotesync.core.config import DownloadConfig, HttpConfig, ProvidersConfig, QuoteSyncConfig
from quotesync.core.models import InstrumentKind, StockExchange
from quotesync.host.memory import (
    EXCHANGE_TAG,
    HostModel,
    MemoryCurrencyTable,
    MemoryInstrument,
    TagSymbolMap,
)

YAHOO_QUOTES_URL = "https://quotes.test/d/quotes.csv"
YAHOO_HISTORY_URL = "https://history.test/table.csv"
GOOGLE_HISTORY_URL = "https://google.test/finance/historical"
FX_QUOTES_URL = "https://fx.test/d/quotes.csv"


@pytest.fixture
def config() -> QuoteSyncConfig:
    return QuoteSyncConfig(
        download=DownloadConfig(history_days=5, local_utc_offset_hours=-6.0),
        http=HttpConfig(timeout=5.0, rate_limit=100),
        providers=ProvidersConfig(
            yahoo_quotes_url=YAHOO_QUOTES_URL,
            yahoo_history_url=YAHOO_HISTORY_URL,
            google_history_url=GOOGLE_HISTORY_URL,
            fx_quotes_url=FX_QUOTES_URL,
        ),
    )


@pytest.fixture
def nyse() -> StockExchange:
    return StockExchange(
        exchange_id="NYSE",
        name="New York Stock Exchange",
        utc_offset_hours=-5.0,
        currency_code="USD",
    )


@pytest.fixture
def lse() -> StockExchange:
    return StockExchange(
        exchange_id="LSE",
        name="London Stock Exchange",
        utc_offset_hours=0.0,
        currency_code="GBP",
        suffixes={"yahoo": ".L", "google": "LON"},
    )


@pytest.fixture
def host(nyse: StockExchange, lse: StockExchange) -> HostModel:
    """USD-based table with two currencies and two securities."""
    instruments = [
        MemoryInstrument(
            id="USD", name="US Dollar", kind=InstrumentKind.CURRENCY, currency_code="USD"
        ),
        # 0.5 GBP per USD
        MemoryInstrument(
            id="GBP",
            name="British Pound",
            kind=InstrumentKind.CURRENCY,
            currency_code="GBP",
            rate=0.5,
        ),
        MemoryInstrument(
            id="IBM",
            name="IBM",
            ticker="IBM",
            tags={EXCHANGE_TAG: "NYSE"},
        ),
        MemoryInstrument(
            id="VOD",
            name="Vodafone",
            ticker="VOD",
            tags={EXCHANGE_TAG: "LSE"},
        ),
    ]
    table = MemoryCurrencyTable(instruments, base_id="USD")
    return HostModel(table=table, symbol_map=TagSymbolMap([nyse, lse]))
