"""Node-local counter policy.

Counters live in a process-wide ``SharedCounterStore`` with native per-key
TTL. Every ``LocalPolicy`` in the process shares the default store, so all
tasks and threads of one node see the same counts.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ratecounter.exceptions import CounterStoreError
from ratecounter.keys import get_local_key
from ratecounter.periods import EXPIRATION, get_timestamps, validate_period

from .base import CounterPolicy, enabled_periods

logger = logging.getLogger(__name__)


class SharedCounterStore:
    """Thread-safe in-process counter store with per-key expiration.

    Attributes:
        _entries: Mapping of key to (value, expires_at)
        _max_keys: Maximum number of live keys
        _clock: Time source returning UNIX time in seconds
    """

    def __init__(
        self, max_keys: int = 100000, clock: Callable[[], float] = time.time
    ) -> None:
        """Initialize the store.

        Args:
            max_keys: Maximum number of live keys before increments fail
            clock: Time source function returning UNIX time in seconds

        Raises:
            ValueError: If max_keys is invalid
        """
        if max_keys < 1:
            raise ValueError("max_keys must be >= 1")

        self._entries: Dict[str, Tuple[int, Optional[float]]] = {}
        self._max_keys = max_keys
        self._clock = clock
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def _is_live(self, entry: Tuple[int, Optional[float]], now: float) -> bool:
        expires_at = entry[1]
        return expires_at is None or expires_at > now

    def _evict_expired(self, now: float) -> None:
        stale = [k for k, entry in self._entries.items() if not self._is_live(entry, now)]
        for key in stale:
            del self._entries[key]

    def incr(self, key: str, value: int, init: int = 0, ttl: Optional[float] = None) -> int:
        """Atomically add ``value`` to a key.

        A missing or expired key is created as ``init + value`` with the given
        TTL. Increments on a live key never touch its expiration.

        Args:
            key: Counter key
            value: Amount to add
            init: Initial value when the key is created
            ttl: Time-to-live in seconds for a newly created key

        Returns:
            The new counter value

        Raises:
            CounterStoreError: If the store is full
        """
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)

            if entry is not None and self._is_live(entry, now):
                new_value = entry[0] + value
                self._entries[key] = (new_value, entry[1])
                return new_value

            if entry is None and len(self._entries) >= self._max_keys:
                self._evict_expired(now)
                if len(self._entries) >= self._max_keys:
                    raise CounterStoreError(
                        "no memory", details={"key": key, "max_keys": self._max_keys}
                    )

            expires_at = now + ttl if ttl else None
            new_value = init + value
            self._entries[key] = (new_value, expires_at)
            return new_value

    def get(self, key: str) -> Optional[int]:
        """Read a key.

        Args:
            key: Counter key

        Returns:
            The counter value, or None if the key is absent or expired
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not self._is_live(entry, self._clock()):
                del self._entries[key]
                return None
            return entry[0]

    def flush_expired(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed
        """
        with self._lock:
            before = len(self._entries)
            self._evict_expired(self._clock())
            return before - len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


_shared_store: Optional[SharedCounterStore] = None


def get_shared_store() -> SharedCounterStore:
    """Return the process-wide counter store, creating it on first use."""
    global _shared_store
    if _shared_store is None:
        _shared_store = SharedCounterStore()
    return _shared_store


class LocalPolicy(CounterPolicy):
    """Counter policy backed by the node-local shared store."""

    name = "local"

    def __init__(self, conf: Any = None, store: Optional[SharedCounterStore] = None):
        """Initialize the local policy.

        Args:
            conf: PolicyConfig (unused; accepted for factory symmetry)
            store: Counter store (defaults to the process-wide store)
        """
        self._store = store or get_shared_store()

    @property
    def store(self) -> SharedCounterStore:
        return self._store

    async def increment(
        self,
        conf: Any,
        limits: Mapping[str, Any],
        identifier: str,
        now: float,
        value: int = 1,
    ) -> bool:
        periods = get_timestamps(now)
        for period, period_date in enabled_periods(limits, periods):
            cache_key = get_local_key(conf, identifier, period, period_date)
            try:
                self._store.incr(cache_key, value, 0, EXPIRATION[period])
            except CounterStoreError as e:
                logger.error(f"could not increment counter for period '{period}': {e}")
                raise

        return True

    async def usage(self, conf: Any, identifier: str, period: str, now: float) -> int:
        validate_period(period)
        periods = get_timestamps(now)
        cache_key = get_local_key(conf, identifier, period, periods[period])

        current_metric = self._store.get(cache_key)
        return current_metric or 0


__all__ = ["LocalPolicy", "SharedCounterStore", "get_shared_store"]
