"""Currency exchange-rate connection using the Yahoo quotes CSV format.

The pair is requested as ``<BASE><CURRENCY>=X``; the last-trade field is
the number of ``CURRENCY`` units per one ``BASE`` unit, which is already the
base-relative rate the host stores.
"""

from __future__ import annotations

import csv
import logging
from datetime import datetime

from quotesync.connections.base import HttpTransport
from quotesync.core.config import HttpConfig, QuoteSyncConfig
from quotesync.core.exceptions import ParsingError
from quotesync.core.models import ExchangeRate

logger = logging.getLogger(__name__)

_QUOTE_FORMAT = "sl1d1t1c1ohgv"
_QUOTE_TIME_FORMAT = "%m/%d/%Y %I:%M%p"


class FXConnection:
    """Retrieves current exchange rates.

    Parameters
    ----------
    quotes_url : str
        Base URL of the quotes CSV endpoint.
    http : HttpConfig | None
        Timeout and rate limit. Uses defaults if None.
    """

    connection_id = "fx"

    def __init__(self, quotes_url: str, http: HttpConfig | None = None) -> None:
        self._quotes_url = quotes_url
        self._transport = HttpTransport(http or HttpConfig(), self.connection_id)

    @classmethod
    def from_config(cls, config: QuoteSyncConfig) -> FXConnection:
        return cls(config.providers.fx_quotes_url, http=config.http)

    @staticmethod
    def pair_symbol(currency_code: str, base_code: str) -> str:
        return f"{base_code}{currency_code}=X"

    async def get_current_rate(
        self, currency_code: str, base_code: str
    ) -> ExchangeRate | None:
        """Fetch the rate of ``currency_code`` against ``base_code``.

        Returns None for codes that are not three letters, or when the
        provider sends an empty body.

        Raises
        ------
        DownloadError
            Network failure or HTTP non-success.
        ParsingError
            The response carries no usable rate.
        """
        currency_code = currency_code.strip().upper()
        base_code = base_code.strip().upper()
        if len(currency_code) != 3 or len(base_code) != 3:
            logger.debug("Skipping rate request for %r/%r", currency_code, base_code)
            return None

        params = {
            "s": self.pair_symbol(currency_code, base_code),
            "f": _QUOTE_FORMAT,
            "e": ".csv",
        }
        body = await self._transport.get_text(self._quotes_url, params)
        if body is None:
            return None

        rate: float | None = None
        timestamp: datetime | None = None
        for line in body.splitlines():
            line = line.strip()
            if not line:
                continue
            fields = next(csv.reader([line]))
            if len(fields) < 2 or not fields[1].strip():
                continue
            try:
                rate = float(fields[1].strip())
            except ValueError as e:
                raise ParsingError(
                    f"Unparsable rate for {currency_code}: {fields[1]!r}",
                    context={"line": line[:200], "connection": self.connection_id},
                ) from e
            timestamp = _parse_quote_time(fields)

        if rate is None:
            raise ParsingError(
                f"No rate returned for {currency_code}",
                context={"connection": self.connection_id},
            )
        return ExchangeRate(currency_code=currency_code, rate=rate, timestamp=timestamp)


def _parse_quote_time(fields: list[str]) -> datetime | None:
    if len(fields) < 4:
        return None
    try:
        return datetime.strptime(
            f"{fields[2].strip()} {fields[3].strip()}", _QUOTE_TIME_FORMAT
        )
    except ValueError:
        return None
