"""Remote cache counter policy backed by Redis.

Two modes, selected by ``sync_rate``:

- ``sync_rate <= 0``: every increment runs an atomic increment-and-expire
  script per period in one pipeline, and every read is a ``GET``.
- ``sync_rate > 0``: increments accumulate in a local ``SyncState`` and a
  ``SyncScheduler`` flushes them in the background. Reads are answered from
  cached snapshots plus the pending delta.
"""

import logging
import time
from typing import Any, Callable, Mapping, Optional

from ratecounter.exceptions import RemoteConnectionError, RemoteStoreError
from ratecounter.keys import get_local_key
from ratecounter.periods import EXPIRATION, get_timestamps, validate_period
from ratecounter.remote import INCREMENT_EXPIRE_SCRIPT, RedisConnector, execute_increments
from ratecounter.sync import SyncScheduler, SyncState

from .base import CounterPolicy, enabled_periods

logger = logging.getLogger(__name__)


class RedisPolicy(CounterPolicy):
    """Counter policy sharing counters across the fleet through Redis.

    Attributes:
        _connector: Pooled Redis connector
        _state: Local caches used in batched mode
        _scheduler: Background flusher used in batched mode
    """

    name = "redis"

    def __init__(
        self,
        conf: Any,
        connector: Optional[RedisConnector] = None,
        state: Optional[SyncState] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the redis policy.

        Args:
            conf: PolicyConfig with the Redis connection settings
            connector: Optional connector (defaults to the shared pools)
            state: Optional sync state (a fresh one per policy by default)
            clock: Time source used to stamp successful flushes
        """
        self._connector = connector or RedisConnector(conf)
        self._state = state or SyncState()
        self._scheduler = SyncScheduler(self._state, self._connector, clock=clock)

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def scheduler(self) -> SyncScheduler:
        return self._scheduler

    async def increment(
        self,
        conf: Any,
        limits: Mapping[str, Any],
        identifier: str,
        now: float,
        value: int = 1,
    ) -> bool:
        periods = get_timestamps(now)

        if not conf.batched:
            items = [
                (get_local_key(conf, identifier, period, period_date), value, EXPIRATION[period])
                for period, period_date in enabled_periods(limits, periods)
            ]
            if not items:
                return True

            try:
                async with self._connector.connection() as client:
                    await execute_increments(client, INCREMENT_EXPIRE_SCRIPT, items)
            except RemoteConnectionError as e:
                logger.error(str(e))
                raise
            except RemoteStoreError as e:
                logger.error(f"failed to commit increment pipeline in Redis: {e}")
                raise

            return True

        for period, period_date in enabled_periods(limits, periods):
            cache_key = get_local_key(conf, identifier, period, period_date)
            self._state.add_delta(cache_key, value, now + EXPIRATION[period])

        if self._scheduler.due(now, conf.sync_rate):
            self._scheduler.trigger()

        return True

    async def usage(self, conf: Any, identifier: str, period: str, now: float) -> int:
        validate_period(period)
        periods = get_timestamps(now)
        cache_key = get_local_key(conf, identifier, period, periods[period])

        if conf.batched:
            snapshot = self._state.usage.get(cache_key)
            if snapshot is not None:
                if snapshot.is_live(now):
                    return snapshot.value + self._state.delta(cache_key)

                # Window rolled over locally; start again from zero
                self._state.set_snapshot(cache_key, 0, now + EXPIRATION[period])
                return 0

        current_metric = await self._fetch(cache_key)

        if conf.batched:
            self._state.set_snapshot(
                cache_key, current_metric or 0, now + EXPIRATION[period]
            )

        return current_metric or 0

    async def _fetch(self, cache_key: str) -> Optional[int]:
        """Read a counter from Redis.

        Returns:
            The stored value, or None if the key does not exist
        """
        try:
            async with self._connector.connection() as client:
                current_metric = await client.get(cache_key)
        except RemoteStoreError as e:
            logger.error(f"failed to get counter from Redis: {e}")
            raise

        if current_metric is None:
            return None
        return int(current_metric)

    async def close(self) -> None:
        await self._scheduler.close()


__all__ = ["RedisPolicy"]
