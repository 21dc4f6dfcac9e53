"""Tests for quotesync.core.models."""

from datetime import date, datetime

import pytest
from pydantic import ValidationError

from quotesync.core.models import (
    DateRange,
    DownloadResult,
    FetchResult,
    FetchStatus,
    RunState,
    RunSummary,
    StockExchange,
    StockHistory,
    StockRecord,
)


class TestStockExchange:
    def test_currency_code_uppercased(self):
        ex = StockExchange(exchange_id="TSX", currency_code=" cad ")
        assert ex.currency_code == "CAD"

    def test_offset_out_of_range(self):
        with pytest.raises(ValidationError, match="utc_offset_hours"):
            StockExchange(exchange_id="X", utc_offset_hours=-13)

    def test_provider_suffix(self):
        ex = StockExchange(exchange_id="LSE", suffixes={"yahoo": " .L ", "google": ""})
        assert ex.provider_suffix("yahoo") == ".L"
        assert ex.provider_suffix("google") is None
        assert ex.provider_suffix("other") is None

    def test_frozen(self):
        ex = StockExchange(exchange_id="LSE")
        with pytest.raises(ValidationError):
            ex.name = "changed"


class TestDateRange:
    def test_start_date(self):
        r = DateRange(end_date=date(2010, 6, 19), num_days=5)
        assert r.start_date == date(2010, 6, 14)

    def test_num_days_positive(self):
        with pytest.raises(ValidationError, match="num_days"):
            DateRange(end_date=date(2010, 6, 19), num_days=0)

    def test_ending_today(self):
        r = DateRange.ending_today(3)
        assert r.end_date == date.today()
        assert r.num_days == 3

    def test_format(self):
        r = DateRange(end_date=date(2010, 6, 19), num_days=5)
        assert r.format() == "2010-06-14 - 2010-06-19"


class TestStockRecord:
    def test_from_price_stores_reciprocal(self):
        rec = StockRecord.from_price(125.0, datetime(2010, 6, 18))
        assert rec.close_rate == pytest.approx(0.008)
        assert rec.close_price == pytest.approx(125.0)
        assert rec.price_display == "125"
        assert rec.is_valid

    def test_zero_price_is_invalid(self):
        rec = StockRecord.from_price(0.0, datetime(2010, 6, 18), price_display="N/A")
        assert rec.close_rate == 0.0
        assert rec.close_price == 0.0
        assert not rec.is_valid
        assert rec.price_display == "N/A"


class TestStockHistory:
    def test_counts(self):
        h = StockHistory()
        h.add_record(StockRecord.from_price(10.0, datetime(2010, 6, 17)))
        h.add_error()
        assert h.record_count == 1
        assert h.error_count == 1

    def test_most_recent_valid_record(self):
        h = StockHistory(
            records=[
                StockRecord.from_price(10.0, datetime(2010, 6, 16)),
                StockRecord(close_rate=0.0, timestamp=datetime(2010, 6, 18)),
                StockRecord.from_price(12.5, datetime(2010, 6, 17)),
            ]
        )
        latest = h.find_most_recent_valid_record()
        assert latest.timestamp == datetime(2010, 6, 17)
        assert latest.close_price == pytest.approx(12.5)

    def test_no_valid_record(self):
        h = StockHistory(records=[StockRecord(close_rate=0.0, timestamp=datetime(2010, 6, 18))])
        assert h.find_most_recent_valid_record() is None


class TestFetchResult:
    def test_ok(self):
        r = FetchResult.ok(5)
        assert r.status == FetchStatus.OK
        assert r.value == 5
        assert r.succeeded

    def test_empty(self):
        r = FetchResult.empty()
        assert r.status == FetchStatus.EMPTY
        assert not r.succeeded

    def test_failed(self):
        err = ValueError("x")
        r = FetchResult.failed(err)
        assert r.status == FetchStatus.FAILED
        assert r.error is err
        assert r.value is None


class TestDownloadResult:
    def test_default_is_success(self):
        r = DownloadResult(display_name="IBM")
        assert r.succeeded
        assert not r.errored

    def test_skipped_is_neither(self):
        r = DownloadResult(skipped=True, current_error=True)
        assert not r.errored
        assert not r.succeeded

    def test_errors_take_precedence(self):
        r = DownloadResult(history_record_count=1, history_error_count=1)
        assert r.errored
        assert not r.succeeded

    def test_current_error(self):
        assert DownloadResult(current_error=True).errored


class TestRunSummary:
    def test_record_counts_disjointly(self):
        s = RunSummary()
        s.record(DownloadResult(skipped=True))
        s.record(DownloadResult(current_error=True))
        s.record(DownloadResult(history_error_count=1, history_record_count=1))
        s.record(DownloadResult())
        assert (s.skipped, s.errored, s.succeeded) == (1, 2, 1)

    def test_all_clear(self):
        assert RunSummary().all_clear
        s = RunSummary()
        s.record(DownloadResult())
        assert not s.all_clear

    def test_to_dict(self):
        d = RunSummary(state=RunState.COMPLETED, total=3).to_dict()
        assert d["state"] == "completed"
        assert d["total"] == 3
