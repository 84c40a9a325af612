"""SQLite storage strategy for the cluster policy."""

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import aiosqlite

from ratecounter.exceptions import StrategyError
from ratecounter.periods import EXPIRATION, get_timestamps, validate_period

from .base import METRICS_COLLECTION, ClusterStrategy

logger = logging.getLogger(__name__)

_COLUMNS = ("identifier", "period", "period_date", "service_id", "route_id", "value", "ttl")


class SQLiteStrategy(ClusterStrategy):
    """Cluster counters persisted in a SQLite database file.

    Each increment is an upsert that adds to the stored value. The ttl is
    only written when the row is created, so a bucket's lifetime is measured
    from its first write.
    """

    name = "sqlite"

    def __init__(self, db_path: str = "ratecounter.db", timeout: float = 5.0) -> None:
        """Initialize the SQLite strategy.

        Args:
            db_path: Path of the database file
            timeout: Seconds to wait for the database lock
        """
        self.db_path = str(Path(db_path))
        self.timeout = timeout
        self._lock: Optional[asyncio.Lock] = None  # Lazy initialization
        self._initialized = False

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def _ensure_schema(self, db: aiosqlite.Connection) -> None:
        if self._initialized:
            return

        await db.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {METRICS_COLLECTION} (
                identifier TEXT NOT NULL,
                period TEXT NOT NULL,
                period_date INTEGER NOT NULL,
                service_id TEXT NOT NULL,
                route_id TEXT NOT NULL,
                value INTEGER NOT NULL DEFAULT 0,
                ttl REAL NOT NULL,
                PRIMARY KEY (identifier, period, period_date, service_id, route_id)
            )
        """
        )
        await db.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{METRICS_COLLECTION}_ttl "
            f"ON {METRICS_COLLECTION} (ttl)"
        )
        self._initialized = True

    async def increment(
        self,
        limits: Mapping[str, Any],
        identifier: str,
        now: float,
        service_id: str,
        route_id: str,
        value: int,
    ) -> bool:
        periods = get_timestamps(now)
        rows = [
            (identifier, period, period_date, service_id, route_id, value, now + EXPIRATION[period])
            for period, period_date in periods.items()
            if limits.get(period)
        ]
        if not rows:
            return True

        try:
            async with self._get_lock():
                async with aiosqlite.connect(self.db_path, timeout=self.timeout) as db:
                    await self._ensure_schema(db)
                    await db.executemany(
                        f"""
                        INSERT INTO {METRICS_COLLECTION}
                            (identifier, period, period_date, service_id, route_id, value, ttl)
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT (identifier, period, period_date, service_id, route_id)
                        DO UPDATE SET value = {METRICS_COLLECTION}.value + excluded.value
                    """,
                        rows,
                    )
                    await db.commit()
        except sqlite3.Error as e:
            raise StrategyError(
                f"Failed to increment sqlite counters: {e}",
                details={"identifier": identifier, "db_path": self.db_path},
            ) from e

        return True

    async def find(
        self,
        identifier: str,
        period: str,
        now: float,
        service_id: str,
        route_id: str,
    ) -> Optional[Dict[str, Any]]:
        validate_period(period)
        period_date = get_timestamps(now)[period]

        try:
            async with self._get_lock():
                async with aiosqlite.connect(self.db_path, timeout=self.timeout) as db:
                    await self._ensure_schema(db)
                    async with db.execute(
                        f"""
                        SELECT {", ".join(_COLUMNS)}
                        FROM {METRICS_COLLECTION}
                        WHERE identifier = ? AND period = ? AND period_date = ?
                          AND service_id = ? AND route_id = ?
                    """,
                        (identifier, period, period_date, service_id, route_id),
                    ) as cursor:
                        row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise StrategyError(
                f"Failed to read sqlite counter: {e}",
                details={"identifier": identifier, "period": period},
            ) from e

        if row is None:
            return None
        return dict(zip(_COLUMNS, row))

    async def cleanup(self, now: float) -> int:
        try:
            async with self._get_lock():
                async with aiosqlite.connect(self.db_path, timeout=self.timeout) as db:
                    await self._ensure_schema(db)
                    cursor = await db.execute(
                        f"DELETE FROM {METRICS_COLLECTION} WHERE ttl <= ?", (now,)
                    )
                    deleted = cursor.rowcount
                    await db.commit()
        except sqlite3.Error as e:
            raise StrategyError(f"Failed to clean up sqlite counters: {e}") from e

        if deleted:
            logger.debug(f"Deleted {deleted} expired rate limiting metrics")
        return deleted


__all__ = ["SQLiteStrategy"]
