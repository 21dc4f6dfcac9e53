"""Pydantic data models and value objects — the system's type contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, field_validator

# --- Type Aliases ---

InstrumentId = str
ConnectionId = str
CurrencyCode = str

# Tag keys written back to the host instrument store
PRICE_DATE_TAG = "price_date"
RATE_DATE_TAG = "rate_date"
RELATIVE_TO_TAG = "relative_to_currency"

T = TypeVar("T")

# --- Enumerations ---


class InstrumentKind(StrEnum):
    """Kinds of entries held by the host currency table."""

    SECURITY = "security"
    CURRENCY = "currency"


class FetchStatus(StrEnum):
    """Outcome of a single provider call."""

    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


class RunState(StrEnum):
    """Lifecycle of a download run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# --- Reference Data ---


class StockExchange(BaseModel):
    """A stock exchange and its provider-specific symbol conventions."""

    model_config = ConfigDict(frozen=True)

    exchange_id: str
    name: str = ""
    utc_offset_hours: float = 0.0
    currency_code: CurrencyCode = "USD"
    suffixes: dict[ConnectionId, str] = {}

    @field_validator("utc_offset_hours")
    @classmethod
    def offset_in_range(cls, v: float) -> float:
        if v < -12.0 or v > 14.0:
            raise ValueError(f"utc_offset_hours must be within [-12, 14], got {v}")
        return v

    @field_validator("currency_code")
    @classmethod
    def currency_code_upper(cls, v: str) -> str:
        return v.strip().upper()

    def provider_suffix(self, provider_id: ConnectionId) -> str | None:
        """Return the symbol suffix/prefix this exchange uses for a provider."""
        suffix = self.suffixes.get(provider_id)
        if suffix is None or not suffix.strip():
            return None
        return suffix.strip()


# --- Download Request / Response Models ---


class DateRange(BaseModel):
    """Inclusive range of ``num_days`` days ending at ``end_date``."""

    model_config = ConfigDict(frozen=True)

    end_date: date
    num_days: int

    @field_validator("num_days")
    @classmethod
    def num_days_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"num_days must be >= 1, got {v}")
        return v

    @property
    def start_date(self) -> date:
        return self.end_date - timedelta(days=self.num_days)

    @classmethod
    def ending_today(cls, num_days: int) -> DateRange:
        return cls(end_date=date.today(), num_days=num_days)

    def format(self, fmt: str = "%Y-%m-%d") -> str:
        return f"{self.start_date.strftime(fmt)} - {self.end_date.strftime(fmt)}"


class StockRecord(BaseModel):
    """A single price observation.

    ``close_rate`` is held on the rate basis: the reciprocal of the price the
    provider quoted, in units of the security per unit of price currency.
    A ``close_rate`` of zero marks an observation with no usable price.
    """

    model_config = ConfigDict(frozen=True)

    close_rate: float
    timestamp: datetime
    price_display: str = ""

    @classmethod
    def from_price(
        cls, price: float, timestamp: datetime, price_display: str = ""
    ) -> StockRecord:
        """Build a record from a provider's native price."""
        rate = 1.0 / price if price > 0 else 0.0
        return cls(
            close_rate=rate,
            timestamp=timestamp,
            price_display=price_display or f"{price:.4f}".rstrip("0").rstrip("."),
        )

    @property
    def close_price(self) -> float:
        """The provider's native price, or 0.0 if the record is invalid."""
        return 1.0 / self.close_rate if self.close_rate != 0.0 else 0.0

    @property
    def is_valid(self) -> bool:
        return self.close_rate != 0.0


@dataclass
class StockHistory:
    """Price records for one instrument over one date range."""

    records: list[StockRecord] = field(default_factory=list)
    error_count: int = 0

    @property
    def record_count(self) -> int:
        return len(self.records)

    def add_record(self, record: StockRecord) -> None:
        self.records.append(record)

    def add_error(self) -> None:
        self.error_count += 1

    def find_most_recent_valid_record(self) -> StockRecord | None:
        valid = [r for r in self.records if r.is_valid]
        if not valid:
            return None
        return max(valid, key=lambda r: r.timestamp)


class ExchangeRate(BaseModel):
    """A currency rate relative to a base currency."""

    model_config = ConfigDict(frozen=True)

    currency_code: CurrencyCode
    rate: float
    timestamp: datetime | None = None


class PriceSnapshot(BaseModel):
    """A dated, base-currency rate saved into an instrument's price history."""

    model_config = ConfigDict(frozen=True)

    instrument_id: InstrumentId
    date: date
    rate: float
    source: str = "unknown"


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """Tri-state outcome of a provider call: data, nothing, or a failure."""

    status: FetchStatus
    value: T | None = None
    error: Exception | None = None

    @classmethod
    def ok(cls, value: T) -> FetchResult[T]:
        return cls(FetchStatus.OK, value=value)

    @classmethod
    def empty(cls) -> FetchResult[T]:
        return cls(FetchStatus.EMPTY)

    @classmethod
    def failed(cls, error: Exception) -> FetchResult[T]:
        return cls(FetchStatus.FAILED, error=error)

    @property
    def succeeded(self) -> bool:
        return self.status == FetchStatus.OK


@dataclass
class DownloadResult:
    """Per-instrument outcome of one download run."""

    display_name: str = ""
    skipped: bool = False
    history_error_count: int = 0
    history_record_count: int = 0
    history_result: str | None = None
    current_error: bool = False
    current_result: str | None = None
    log_message: str | None = None

    @property
    def errored(self) -> bool:
        return not self.skipped and (
            self.current_error or self.history_error_count > 0
        )

    @property
    def succeeded(self) -> bool:
        """Not skipped and nothing failed; errors take precedence."""
        return not self.skipped and not self.errored


class RunSummary(BaseModel):
    """Aggregate counters and final status of a download run."""

    state: RunState = RunState.IDLE
    total: int = 0
    skipped: int = 0
    errored: int = 0
    succeeded: int = 0
    message: str = ""
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def all_clear(self) -> bool:
        return self.skipped == 0 and self.errored == 0 and self.succeeded == 0

    def record(self, result: DownloadResult) -> None:
        """Fold one instrument's outcome into the counters."""
        if result.skipped:
            self.skipped += 1
        elif result.errored:
            self.errored += 1
        else:
            self.succeeded += 1

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
