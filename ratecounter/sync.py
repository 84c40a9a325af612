"""Batched synchronization state and the background flush scheduler.

In batched mode the redis policy accumulates increments locally and answers
reads from cached snapshots. ``SyncScheduler`` periodically pushes the
accumulated deltas to Redis in one pipelined transaction.

Per-key lifecycle::

    ABSENT -> PENDING (delta, no snapshot) -> CACHED (snapshot + delta)
           -> [EXPIRED_LOCALLY -> CACHED]* -> FLUSHING -> ABSENT
"""

import asyncio
import copy
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ratecounter.exceptions import RemoteStoreError
from ratecounter.remote import INCREMENT_EXPIREAT_SCRIPT, RedisConnector, execute_increments

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """Last known remote value of a key and the instant it stops being valid."""

    value: int
    expire: float

    def is_live(self, now: float) -> bool:
        return now < self.expire


class SyncState:
    """Process-local caches of one batched redis policy.

    Attributes:
        deltas: Increments not yet handed to a flush, by cache key
        in_flight: Increments captured by the running flush, by cache key
        usage: Snapshots of remote values, by cache key
        pending_expire: Absolute expiry for keys that have a delta but no snapshot
        last_sync: UNIX time of the last successful flush (0.0 before the first)
    """

    def __init__(self) -> None:
        self.deltas: Dict[str, int] = {}
        self.in_flight: Dict[str, int] = {}
        self.usage: Dict[str, Snapshot] = {}
        self.pending_expire: Dict[str, float] = {}
        self.last_sync: float = 0.0

    def add_delta(self, cache_key: str, value: int, expire: float) -> int:
        """Accumulate an increment for a key.

        Args:
            cache_key: Counter key
            value: Amount to add
            expire: Absolute expiry to use if the key has no snapshot yet

        Returns:
            The accumulated delta
        """
        self.deltas[cache_key] = self.deltas.get(cache_key, 0) + value
        if cache_key not in self.usage:
            self.pending_expire.setdefault(cache_key, expire)
        return self.deltas[cache_key]

    def delta(self, cache_key: str) -> int:
        """Local increments the remote value may not reflect yet."""
        return self.deltas.get(cache_key, 0) + self.in_flight.get(cache_key, 0)

    def set_snapshot(self, cache_key: str, value: int, expire: float) -> Snapshot:
        """Record a snapshot and zero the key's pending delta.

        Amounts already captured by a running flush are not touched.
        """
        snapshot = Snapshot(value=value, expire=expire)
        self.usage[cache_key] = snapshot
        self.deltas[cache_key] = 0
        self.pending_expire.pop(cache_key, None)
        return snapshot

    def expiry_for(self, cache_key: str) -> Optional[float]:
        snapshot = self.usage.get(cache_key)
        if snapshot is not None:
            return snapshot.expire
        return self.pending_expire.get(cache_key)

    def pending_batch(self) -> List[Tuple[str, int, int]]:
        """(key, delta, absolute expiry) for every key with a non-zero delta."""
        return [
            (cache_key, delta, int(self.expiry_for(cache_key)))
            for cache_key, delta in self.deltas.items()
            if delta
        ]

    def begin_flush(self) -> List[Tuple[str, int, int]]:
        """Capture the pending batch and move its amounts to ``in_flight``.

        Increments and snapshot resets that happen while the flush runs only
        touch ``deltas``, never the captured amounts.

        Returns:
            The batch to send
        """
        batch = self.pending_batch()
        for cache_key, delta, _ in batch:
            self.in_flight[cache_key] = self.deltas.pop(cache_key)
        return batch

    def finish_flush(self, now: float) -> None:
        """Apply a successful flush.

        Every snapshot is dropped along with the captured amounts. Increments
        added while the flush was running are kept for the next flush.
        """
        carried = {k: v for k, v in self.deltas.items() if v}
        pending_expire = {}
        for cache_key in carried:
            expire = self.expiry_for(cache_key)
            if expire is not None:
                pending_expire[cache_key] = expire

        self.deltas = carried
        self.in_flight = {}
        self.pending_expire = pending_expire
        self.usage.clear()
        self.last_sync = now

    def abort_flush(self) -> None:
        """Return the captured amounts to the pending deltas after a failure."""
        for cache_key, delta in self.in_flight.items():
            self.deltas[cache_key] = self.deltas.get(cache_key, 0) + delta
        self.in_flight = {}

    def clear(self) -> None:
        self.deltas.clear()
        self.in_flight.clear()
        self.usage.clear()
        self.pending_expire.clear()

    def copy(self) -> "SyncState":
        return copy.deepcopy(self)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, SyncState):
            return NotImplemented
        return (
            self.deltas == other.deltas
            and self.in_flight == other.in_flight
            and self.usage == other.usage
            and self.pending_expire == other.pending_expire
            and self.last_sync == other.last_sync
        )


class SyncScheduler:
    """Flushes pending deltas to Redis outside the request path.

    At most one flush runs at a time. Triggers that arrive while a flush is
    in flight are dropped, because staleness is already bounded by the sync
    rate.
    """

    def __init__(
        self,
        state: SyncState,
        connector: RedisConnector,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the scheduler.

        Args:
            state: Sync state to flush
            connector: Redis connector used for the flush
            clock: Time source function returning UNIX time in seconds
        """
        self._state = state
        self._connector = connector
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def due(self, now: float, sync_rate: float) -> bool:
        """Whether enough time has passed since the last flush."""
        return now - self._state.last_sync >= sync_rate

    def trigger(self) -> bool:
        """Schedule a flush on the running event loop without waiting for it.

        Returns:
            True if a flush was scheduled
        """
        if self._closed:
            return False
        if self.in_flight:
            logger.debug("Redis sync already in flight, skipping trigger")
            return False

        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self.flush())
        return True

    async def flush(self) -> bool:
        """Push every pending delta to Redis in one pipelined transaction.

        On failure the captured deltas are returned to the sync state so the
        next trigger retries them.

        Returns:
            True on success
        """
        batch = self._state.begin_flush()

        if batch:
            try:
                async with self._connector.connection() as client:
                    await execute_increments(client, INCREMENT_EXPIREAT_SCRIPT, batch)
            except RemoteStoreError as e:
                logger.error(f"failed to commit increment pipeline in Redis: {e}")
                self._state.abort_flush()
                return False
            except Exception as e:
                logger.error(f"unexpected error during Redis sync: {e}", exc_info=True)
                self._state.abort_flush()
                return False

        self._state.finish_flush(self._clock())
        logger.debug(f"Synced {len(batch)} rate limiting counters to Redis")
        return True

    async def wait(self) -> None:
        """Wait for the in-flight flush, if any."""
        if self._task is not None:
            await self._task

    async def close(self) -> None:
        """Stop accepting triggers and wait for the in-flight flush."""
        self._closed = True
        await self.wait()


__all__ = ["Snapshot", "SyncState", "SyncScheduler"]
