"""Integration test fixtures — real YAML and SQLite I/O but no network."""

from __future__ import annotations

from pathlib import Path

import pytest

from quotesync.core.config import (
    DownloadConfig,
    HttpConfig,
    ProvidersConfig,
    QuoteSyncConfig,
    StorageConfig,
)
from quotesync.host.memory import HostModel, load_host
from quotesync.host.store import SqliteSnapshotStore

HOST_YAML = """\
base_currency: USD
exchanges:
  - exchange_id: NYSE
    name: New York Stock Exchange
    utc_offset_hours: -5
    currency_code: USD
  - exchange_id: LSE
    name: London Stock Exchange
    utc_offset_hours: 0
    currency_code: GBP
    suffixes: {yahoo: .L, google: LON}
instruments:
  - {id: USD, kind: currency, name: US Dollar, currency_code: USD}
  - {id: GBP, kind: currency, name: British Pound, currency_code: GBP, rate: 0.5}
  - {id: EUR, kind: currency, name: Euro, currency_code: EUR, rate: 0.8}
  - {id: IBM, name: IBM, ticker: IBM, tags: {exchange: NYSE}}
  - {id: VOD, name: Vodafone, ticker: VOD, tags: {exchange: LSE}}
  - {id: BP, name: BP, ticker: BP.L-GBP, tags: {quotes_tracked: "false"}}
"""


@pytest.fixture
def integration_config(tmp_path: Path) -> QuoteSyncConfig:
    return QuoteSyncConfig(
        download=DownloadConfig(history_days=5, local_utc_offset_hours=-6.0),
        http=HttpConfig(rate_limit=100),
        providers=ProvidersConfig(
            yahoo_quotes_url="https://quotes.test/d/quotes.csv",
            yahoo_history_url="https://history.test/table.csv",
            google_history_url="https://google.test/finance/historical",
            fx_quotes_url="https://fx.test/d/quotes.csv",
        ),
        storage=StorageConfig(sqlite_path=str(tmp_path / "integration.db")),
    )


@pytest.fixture
def host_file(tmp_path: Path) -> Path:
    path = tmp_path / "instruments.yml"
    path.write_text(HOST_YAML)
    return path


@pytest.fixture
def integration_host(host_file: Path) -> HostModel:
    return load_host(host_file)


@pytest.fixture
def snapshot_store(integration_config: QuoteSyncConfig) -> SqliteSnapshotStore:
    return SqliteSnapshotStore(integration_config.storage.sqlite_path)
