"""Tests for the SQLite cluster strategy."""

import pytest

from ratecounter.exceptions import StrategyError
from ratecounter.keys import EMPTY_UUID
from ratecounter.strategies import SQLiteStrategy


@pytest.fixture
def sqlite_strategy(tmp_path):
    return SQLiteStrategy(str(tmp_path / "metrics.db"))


class TestSQLiteStrategy:
    """Test SQLite upserts, lookups and cleanup."""

    @pytest.mark.asyncio
    async def test_find_missing_row(self, sqlite_strategy, t0):
        assert await sqlite_strategy.find("id", "minute", t0, EMPTY_UUID, EMPTY_UUID) is None

    @pytest.mark.asyncio
    async def test_upsert_adds_values(self, sqlite_strategy, t0):
        await sqlite_strategy.increment({"minute": True}, "id", t0, "svc", "rt", 2)
        await sqlite_strategy.increment({"minute": True}, "id", t0 + 30, "svc", "rt", 5)

        row = await sqlite_strategy.find("id", "minute", t0, "svc", "rt")

        assert row["value"] == 7
        assert row["period"] == "minute"
        assert row["period_date"] == 1699999980000

    @pytest.mark.asyncio
    async def test_ttl_written_on_insert_only(self, sqlite_strategy, t0):
        """Test that the bucket lifetime starts at its first write."""
        await sqlite_strategy.increment({"hour": True}, "id", t0, "svc", "rt", 1)
        await sqlite_strategy.increment({"hour": True}, "id", t0 + 100, "svc", "rt", 1)

        row = await sqlite_strategy.find("id", "hour", t0, "svc", "rt")

        assert row["ttl"] == t0 + 3600

    @pytest.mark.asyncio
    async def test_rows_are_scoped(self, sqlite_strategy, t0):
        await sqlite_strategy.increment({"minute": True}, "id", t0, "svc", "rt", 1)

        assert await sqlite_strategy.find("id", "minute", t0, "other", "rt") is None
        assert await sqlite_strategy.find("other", "minute", t0, "svc", "rt") is None

    @pytest.mark.asyncio
    async def test_cleanup_deletes_expired_rows(self, sqlite_strategy, t0):
        await sqlite_strategy.increment(
            {"second": True, "day": True}, "id", t0, "svc", "rt", 1
        )

        assert await sqlite_strategy.cleanup(t0 + 10) == 1
        assert await sqlite_strategy.find("id", "second", t0, "svc", "rt") is None
        assert await sqlite_strategy.find("id", "day", t0, "svc", "rt") is not None

    @pytest.mark.asyncio
    async def test_no_enabled_periods(self, sqlite_strategy, t0):
        assert await sqlite_strategy.increment({}, "id", t0, "svc", "rt", 1) is True

    @pytest.mark.asyncio
    async def test_unknown_period(self, sqlite_strategy, t0):
        with pytest.raises(ValueError):
            await sqlite_strategy.find("id", "decade", t0, "svc", "rt")

    @pytest.mark.asyncio
    async def test_unusable_path(self, tmp_path, t0):
        strategy = SQLiteStrategy(str(tmp_path / "missing" / "metrics.db"))

        with pytest.raises(StrategyError):
            await strategy.increment({"minute": True}, "id", t0, "svc", "rt", 1)
