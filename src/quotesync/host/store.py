"""SQLite-backed price snapshot storage.

Holds the dated price history that connections append to when asked to
save a full history or to auto-save a current price. Uses aiosqlite for
async SQLite access.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Protocol, runtime_checkable

import aiosqlite

from quotesync.core.exceptions import StorageError
from quotesync.core.models import PriceSnapshot

logger = logging.getLogger(__name__)


@runtime_checkable
class SnapshotStore(Protocol):
    """Protocol for price history persistence backends."""

    async def save_snapshots(self, snapshots: list[PriceSnapshot]) -> int:
        """Store snapshots. Returns count of rows upserted."""
        ...

    async def get_snapshots(
        self, instrument_id: str, start: date, end: date
    ) -> list[PriceSnapshot]:
        """Retrieve stored snapshots for an instrument and date range."""
        ...

    async def latest_snapshot(self, instrument_id: str) -> PriceSnapshot | None:
        """Return the most recent snapshot for an instrument, if any."""
        ...


class SqliteSnapshotStore:
    """SQLite-backed implementation of SnapshotStore.

    One row per instrument and day; a later save for the same day replaces
    the earlier one.

    Parameters
    ----------
    db_path : str
        Path to the SQLite database file.
        Created automatically if it doesn't exist.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._initialized = False

    async def _ensure_table(self) -> None:
        """Create the snapshots table if it doesn't exist."""
        if self._initialized:
            return

        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute(
                    """CREATE TABLE IF NOT EXISTS snapshots (
                        instrument_id TEXT NOT NULL,
                        date TEXT NOT NULL,
                        rate REAL NOT NULL,
                        source TEXT NOT NULL DEFAULT 'unknown',
                        PRIMARY KEY (instrument_id, date)
                    )"""
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to create snapshots table: {e}",
                context={"operation": "migrate", "table": "snapshots"},
            ) from e
        self._initialized = True

    async def save_snapshots(self, snapshots: list[PriceSnapshot]) -> int:
        """Store snapshots with upsert semantics (replace on conflict)."""
        if not snapshots:
            return 0

        await self._ensure_table()

        rows = [
            (s.instrument_id, s.date.isoformat(), s.rate, s.source)
            for s in snapshots
        ]
        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.executemany(
                    """INSERT OR REPLACE INTO snapshots
                       (instrument_id, date, rate, source)
                       VALUES (?, ?, ?, ?)""",
                    rows,
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to store snapshots: {e}",
                context={"operation": "insert", "table": "snapshots"},
            ) from e

        logger.debug("Stored %d price snapshots", len(snapshots))
        return len(snapshots)

    async def get_snapshots(
        self, instrument_id: str, start: date, end: date
    ) -> list[PriceSnapshot]:
        """Retrieve stored snapshots for an instrument and range, sorted by date."""
        await self._ensure_table()

        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(
                """SELECT instrument_id, date, rate, source
                   FROM snapshots
                   WHERE instrument_id = ? AND date >= ? AND date <= ?
                   ORDER BY date""",
                (instrument_id, start.isoformat(), end.isoformat()),
            )
            rows = await cursor.fetchall()

        return [_row_to_snapshot(row) for row in rows]

    async def latest_snapshot(self, instrument_id: str) -> PriceSnapshot | None:
        await self._ensure_table()

        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(
                """SELECT instrument_id, date, rate, source
                   FROM snapshots
                   WHERE instrument_id = ?
                   ORDER BY date DESC
                   LIMIT 1""",
                (instrument_id,),
            )
            row = await cursor.fetchone()

        return _row_to_snapshot(row) if row is not None else None


def _row_to_snapshot(row: tuple) -> PriceSnapshot:
    return PriceSnapshot(
        instrument_id=row[0],
        date=date.fromisoformat(row[1]),
        rate=row[2],
        source=row[3],
    )
