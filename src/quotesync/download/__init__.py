"""quotesync.download — Download runs and price reconciliation."""

from quotesync.download.base import BaseDownloadTask, CancelToken
from quotesync.download.rates import DownloadRatesTask
from quotesync.download.reconcile import (
    CandidateSource,
    CommitOutcome,
    PriceCandidate,
    commit_price,
    current_candidate,
    historical_candidate,
    select_candidate,
    stored_timestamp_millis,
)
from quotesync.download.task import (
    ActiveConnections,
    DownloadQuotesTask,
    attempt,
    resolve_connections,
)

__all__ = [
    "ActiveConnections",
    "BaseDownloadTask",
    "CancelToken",
    "CandidateSource",
    "CommitOutcome",
    "DownloadQuotesTask",
    "DownloadRatesTask",
    "PriceCandidate",
    "attempt",
    "commit_price",
    "current_candidate",
    "historical_candidate",
    "resolve_connections",
    "select_candidate",
    "stored_timestamp_millis",
]
