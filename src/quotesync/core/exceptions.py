"""Custom exception hierarchy for quotesync."""

from typing import Any


class QuoteSyncError(Exception):
    """Base exception for all quotesync errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(QuoteSyncError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value
    """


class DownloadError(QuoteSyncError):
    """A provider call failed (network, HTTP status, or unparsable body).

    Policy: record against the instrument and continue with the next one.
    Never propagated past the download task.

    Context keys:
        url: str — the URL that was being fetched
        status_code: int | None — HTTP status if applicable
        connection: str — the connection id
    """

    def __init__(
        self,
        message: str,
        instrument: Any = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context)
        self.instrument = instrument


class ParsingError(DownloadError):
    """Provider returned a body that could not be interpreted.

    Context keys:
        line: str — the offending line (truncated)
    """


class ConnectionUnavailableError(DownloadError):
    """No usable connection for an enabled capability.

    Policy: counted as a single-instrument error; the run continues.

    Context keys:
        capability: str — "history" or "current_price"
        connection: str | None — the configured connection id
    """


class StorageError(QuoteSyncError):
    """Snapshot store operation failed.

    Policy: raise immediately.

    Context keys:
        operation: str — "insert", "query", etc.
        table: str — the table involved
    """
