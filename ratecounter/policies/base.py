"""Counter policy abstraction.

Every policy counts traffic per (scope, identifier, period, bucket) and
answers usage queries. Policies differ only in where the counters live.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping


class CounterPolicy(ABC):
    """Abstract base class for counter policies.

    All implementations must support:
    - Incrementing every period enabled in ``limits`` for one request
    - Reading the current count of a single period bucket

    Errors are logged by the policy and raised as ``RateCounterError``
    subclasses so the caller can decide between failing open or closed.
    """

    name: str = ""

    @abstractmethod
    async def increment(
        self,
        conf: Any,
        limits: Mapping[str, Any],
        identifier: str,
        now: float,
        value: int = 1,
    ) -> bool:
        """Add ``value`` to the counter of every period enabled in ``limits``.

        Args:
            conf: PolicyConfig carrying the scope identifiers
            limits: Mapping of period name to a truthy flag (or limit)
            identifier: Client identifier being limited
            now: UNIX time in seconds
            value: Units consumed by the request

        Returns:
            True once every applicable period was incremented
        """

    @abstractmethod
    async def usage(self, conf: Any, identifier: str, period: str, now: float) -> int:
        """Read the current count for one period bucket.

        Args:
            conf: PolicyConfig carrying the scope identifiers
            identifier: Client identifier being limited
            period: Period name
            now: UNIX time in seconds

        Returns:
            Current count (0 if the bucket was never written)
        """

    async def close(self) -> None:
        """Release connections and background tasks held by the policy."""
        return None


def enabled_periods(limits: Mapping[str, Any], periods: Mapping[str, Any]):
    """Yield (period, period_date) for every period enabled in ``limits``."""
    for period, period_date in periods.items():
        if limits.get(period):
            yield period, period_date


__all__ = ["CounterPolicy", "enabled_periods"]
