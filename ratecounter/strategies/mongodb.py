"""MongoDB storage strategy for the cluster policy."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from ratecounter.exceptions import StrategyError
from ratecounter.periods import EXPIRATION, get_timestamps, validate_period

from .base import METRICS_COLLECTION, ClusterStrategy

_KEY_FIELDS = ("identifier", "period", "period_date", "service_id", "route_id")


def _to_datetime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class MongoStrategy(ClusterStrategy):
    """Cluster counters persisted in a MongoDB collection.

    Increments are ``$inc`` upserts. The ttl is written with ``$setOnInsert``
    and a TTL index lets MongoDB reap expired rows on its own.
    """

    name = "mongodb"

    def __init__(
        self,
        uri: str = "mongodb://localhost:27017",
        db_name: str = "ratecounter",
        **kwargs: Any,
    ) -> None:
        """Initialize the MongoDB strategy.

        Args:
            uri: MongoDB connection URI
            db_name: Database name
            **kwargs: Extra connection parameters passed to AsyncIOMotorClient
        """
        self.uri = uri
        self.db_name = db_name
        self._connection_kwargs = kwargs
        self._client: Optional[AsyncIOMotorClient] = None
        self._db: Optional[AsyncIOMotorDatabase] = None
        self._lock = asyncio.Lock()

    async def _get_collection(self) -> AsyncIOMotorCollection:
        """Get the metrics collection, connecting on first use.

        Raises:
            StrategyError: If the connection cannot be established
        """
        if self._db is None:
            async with self._lock:
                if self._db is None:  # Double-check locking
                    connection_params = {
                        "maxPoolSize": 10,
                        "connectTimeoutMS": 5000,
                        "serverSelectionTimeoutMS": 5000,
                    }
                    connection_params.update(self._connection_kwargs)
                    try:
                        client = AsyncIOMotorClient(self.uri, **connection_params)
                        db = client.get_database(self.db_name)
                        await db[METRICS_COLLECTION].create_index(
                            [(field, ASCENDING) for field in _KEY_FIELDS], unique=True
                        )
                        await db[METRICS_COLLECTION].create_index(
                            "ttl", expireAfterSeconds=0
                        )
                    except PyMongoError as e:
                        raise StrategyError(f"Failed to connect to MongoDB: {e}") from e
                    self._client = client
                    self._db = db

        return self._db[METRICS_COLLECTION]

    async def increment(
        self,
        limits: Mapping[str, Any],
        identifier: str,
        now: float,
        service_id: str,
        route_id: str,
        value: int,
    ) -> bool:
        coll = await self._get_collection()
        periods = get_timestamps(now)

        try:
            for period, period_date in periods.items():
                if not limits.get(period):
                    continue
                await coll.update_one(
                    {
                        "identifier": identifier,
                        "period": period,
                        "period_date": period_date,
                        "service_id": service_id,
                        "route_id": route_id,
                    },
                    {
                        "$inc": {"value": value},
                        "$setOnInsert": {"ttl": _to_datetime(now + EXPIRATION[period])},
                    },
                    upsert=True,
                )
        except PyMongoError as e:
            raise StrategyError(
                f"Failed to increment mongodb counters: {e}",
                details={"identifier": identifier},
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
        coll = await self._get_collection()

        try:
            row = await coll.find_one(
                {
                    "identifier": identifier,
                    "period": period,
                    "period_date": get_timestamps(now)[period],
                    "service_id": service_id,
                    "route_id": route_id,
                },
                {"_id": 0},
            )
        except PyMongoError as e:
            raise StrategyError(
                f"Failed to read mongodb counter: {e}",
                details={"identifier": identifier, "period": period},
            ) from e

        return dict(row) if row else None

    async def cleanup(self, now: float) -> int:
        coll = await self._get_collection()
        try:
            result = await coll.delete_many({"ttl": {"$lte": _to_datetime(now)}})
        except PyMongoError as e:
            raise StrategyError(f"Failed to clean up mongodb counters: {e}") from e
        return result.deleted_count

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            self._db = None


__all__ = ["MongoStrategy"]
