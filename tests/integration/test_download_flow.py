"""Integration tests for complete download runs.

Connections, reconciliation, the YAML host model and the SQLite snapshot
store working together; provider HTTP is mocked with respx.
"""

from __future__ import annotations

from datetime import date, datetime

import httpx
import pytest
import respx

from quotesync.core.conversions import to_epoch_millis
from quotesync.core.models import PRICE_DATE_TAG, RATE_DATE_TAG, RunState
from quotesync.download import DownloadQuotesTask, DownloadRatesTask
from quotesync.host.memory import LoggingProgressSink, dump_host, load_host

pytestmark = pytest.mark.integration

HISTORY = {
    "IBM": (
        "Date,Open,High,Low,Close,Volume,Adj Close\n"
        "2010-06-17,129.00,130.00,128.00,129.50,1000,129.50\n"
        "2010-06-16,128.00,129.00,127.00,128.00,1000,128.00\n"
    ),
    "VOD.L": (
        "Date,Open,High,Low,Close,Volume,Adj Close\n"
        "2010-06-17,140.00,141.00,139.00,140.00,1000,140.00\n"
    ),
}
QUOTES = {
    "IBM": '"IBM",130.15,"6/18/2010","4:00pm",+1.05,129.00,131.00,128.50,5000000\n',
    "VOD.L": '"VOD.L",130.00,"6/18/2010","4:30pm",+0.50,129.00,131.00,128.50,9000000\n',
}
RATES = {
    "USDGBP=X": '"USDGBP=X",0.6766,"6/18/2010","4:55pm",-0.0011,N/A,N/A,N/A,0\n',
    "USDEUR=X": '"USDEUR=X",0.8085,"6/18/2010","4:55pm",-0.0020,N/A,N/A,N/A,0\n',
}


def answer(bodies: dict[str, str]):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=bodies.get(request.url.params["s"], ""))

    return handler


def mock_providers(config):
    respx.get(url__startswith=config.providers.yahoo_history_url).mock(
        side_effect=answer(HISTORY)
    )
    respx.get(url__startswith=config.providers.yahoo_quotes_url).mock(
        side_effect=answer(QUOTES)
    )


class TestQuotesFlow:
    @respx.mock
    async def test_run_persists_prices_and_history(
        self, integration_config, integration_host, snapshot_store, host_file
    ):
        mock_providers(integration_config)
        sink = LoggingProgressSink()
        task = DownloadQuotesTask.from_config(
            integration_config,
            integration_host.table,
            integration_host.symbol_map,
            progress=sink,
            snapshot_store=snapshot_store,
        )

        summary = await task.run()

        assert summary.state == RunState.COMPLETED
        assert (summary.succeeded, summary.errored, summary.skipped) == (2, 0, 1)
        assert sink.last_percent == 1.0
        assert sink.last_message == summary.message

        # full history landed in SQLite in base-currency terms
        ibm_rows = await snapshot_store.get_snapshots("IBM", date(2010, 6, 1), date(2010, 6, 30))
        assert [r.date for r in ibm_rows] == [date(2010, 6, 16), date(2010, 6, 17)]
        vod_latest = await snapshot_store.latest_snapshot("VOD")
        assert vod_latest.rate == pytest.approx(0.5 / 140.0)

        # the updated model survives a save/load cycle
        dump_host(integration_host, host_file)
        reloaded = load_host(host_file)
        ibm = reloaded.table.get_by_id("IBM")
        assert ibm.rate == pytest.approx(1 / 130.15)
        assert ibm.get_tag(PRICE_DATE_TAG) == str(
            to_epoch_millis(datetime(2010, 6, 18, 15, 0), -6.0)
        )
        assert reloaded.table.get_by_id("BP").get_tag(PRICE_DATE_TAG) is None

    @respx.mock
    async def test_rerun_from_saved_model_is_idempotent(
        self, integration_config, integration_host, host_file
    ):
        mock_providers(integration_config)
        await DownloadQuotesTask.from_config(
            integration_config, integration_host.table, integration_host.symbol_map
        ).run()
        dump_host(integration_host, host_file)
        before = host_file.read_text()

        reloaded = load_host(host_file)
        summary = await DownloadQuotesTask.from_config(
            integration_config, reloaded.table, reloaded.symbol_map
        ).run()
        dump_host(reloaded, host_file)

        assert summary.succeeded == 2
        assert host_file.read_text() == before


class TestRatesFlow:
    @respx.mock
    async def test_rates_then_quotes_use_new_rate(
        self, integration_config, integration_host
    ):
        respx.get(url__startswith=integration_config.providers.fx_quotes_url).mock(
            side_effect=answer(RATES)
        )
        mock_providers(integration_config)

        rates_summary = await DownloadRatesTask.from_config(
            integration_config, integration_host.table, integration_host.symbol_map
        ).run()
        assert rates_summary.succeeded == 2

        gbp = integration_host.table.get_by_id("GBP")
        assert gbp.rate == pytest.approx(0.6766)
        assert gbp.get_tag(RATE_DATE_TAG) is not None

        await DownloadQuotesTask.from_config(
            integration_config, integration_host.table, integration_host.symbol_map
        ).run()
        # VOD is priced in GBP, so its base rate follows the fresh GBP rate
        assert integration_host.table.get_by_id("VOD").rate == pytest.approx(0.6766 / 130.0)
        assert integration_host.table.change_count == 2
