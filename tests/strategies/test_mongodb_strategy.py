"""Tests for the MongoDB cluster strategy.

The collection is mocked so no MongoDB server is required.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pymongo.errors import PyMongoError

from ratecounter.exceptions import StrategyError
from ratecounter.strategies import MongoStrategy


@pytest.fixture
def collection():
    coll = MagicMock()
    coll.update_one = AsyncMock()
    coll.find_one = AsyncMock(return_value=None)
    coll.delete_many = AsyncMock(return_value=MagicMock(deleted_count=2))
    return coll


@pytest.fixture
def mongo_strategy(collection):
    strategy = MongoStrategy(uri="mongodb://test:27017", db_name="test_db")
    with patch.object(strategy, "_get_collection", AsyncMock(return_value=collection)):
        yield strategy


class TestMongoStrategy:
    """Test MongoDB upserts, lookups and cleanup."""

    def test_init(self):
        strategy = MongoStrategy(uri="mongodb://test:27017", db_name="test_db")
        assert strategy.uri == "mongodb://test:27017"
        assert strategy.db_name == "test_db"
        assert strategy.name == "mongodb"

    @pytest.mark.asyncio
    async def test_increment_upserts_each_enabled_period(
        self, mongo_strategy, collection, t0
    ):
        result = await mongo_strategy.increment(
            {"minute": True, "hour": None}, "id", t0, "svc", "rt", 4
        )

        assert result is True
        collection.update_one.assert_awaited_once()
        filter_doc, update_doc = collection.update_one.await_args.args
        assert filter_doc == {
            "identifier": "id",
            "period": "minute",
            "period_date": 1699999980000,
            "service_id": "svc",
            "route_id": "rt",
        }
        assert update_doc["$inc"] == {"value": 4}
        assert update_doc["$setOnInsert"]["ttl"] == datetime.fromtimestamp(
            t0 + 60, tz=timezone.utc
        )
        assert collection.update_one.await_args.kwargs["upsert"] is True

    @pytest.mark.asyncio
    async def test_find(self, mongo_strategy, collection, t0):
        collection.find_one.return_value = {"value": 12, "period": "minute"}

        row = await mongo_strategy.find("id", "minute", t0, "svc", "rt")

        assert row == {"value": 12, "period": "minute"}
        query, projection = collection.find_one.await_args.args
        assert query["period_date"] == 1699999980000
        assert projection == {"_id": 0}

    @pytest.mark.asyncio
    async def test_find_missing(self, mongo_strategy, t0):
        assert await mongo_strategy.find("id", "minute", t0, "svc", "rt") is None

    @pytest.mark.asyncio
    async def test_cleanup(self, mongo_strategy, collection, t0):
        assert await mongo_strategy.cleanup(t0) == 2
        query = collection.delete_many.await_args.args[0]
        assert query == {"ttl": {"$lte": datetime.fromtimestamp(t0, tz=timezone.utc)}}

    @pytest.mark.asyncio
    async def test_driver_errors_are_wrapped(self, mongo_strategy, collection, t0):
        collection.update_one.side_effect = PyMongoError("not primary")
        collection.find_one.side_effect = PyMongoError("not primary")

        with pytest.raises(StrategyError):
            await mongo_strategy.increment({"minute": True}, "id", t0, "svc", "rt", 1)
        with pytest.raises(StrategyError):
            await mongo_strategy.find("id", "minute", t0, "svc", "rt")

    @pytest.mark.asyncio
    async def test_close_without_connection(self):
        strategy = MongoStrategy()
        await strategy.close()
        assert strategy._client is None
