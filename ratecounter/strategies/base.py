"""Storage strategy interface for the cluster policy."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

# Name of the table/collection holding cluster counters
METRICS_COLLECTION = "ratelimiting_metrics"


class ClusterStrategy(ABC):
    """Abstract base class for durable, fleet-wide counter storage.

    A strategy persists one row per (identifier, period, period_date,
    service_id, route_id). Each row holds the accumulated ``value`` and the
    absolute ``ttl`` instant after which the row is no longer relevant.
    """

    name: str = ""

    @abstractmethod
    async def increment(
        self,
        limits: Mapping[str, Any],
        identifier: str,
        now: float,
        service_id: str,
        route_id: str,
        value: int,
    ) -> bool:
        """Add ``value`` to the row of every period enabled in ``limits``.

        Args:
            limits: Mapping of period name to a truthy flag
            identifier: Client identifier being limited
            now: UNIX time in seconds
            service_id: Service scope identifier
            route_id: Route scope identifier
            value: Units consumed

        Returns:
            True on success
        """

    @abstractmethod
    async def find(
        self,
        identifier: str,
        period: str,
        now: float,
        service_id: str,
        route_id: str,
    ) -> Optional[Dict[str, Any]]:
        """Fetch the row for one period bucket.

        Returns:
            Row data or None if the bucket was never written
        """

    async def cleanup(self, now: float) -> int:
        """Delete rows whose ttl has passed.

        Returns:
            Number of rows deleted
        """
        return 0

    async def close(self) -> None:
        """Close connections held by the strategy."""
        return None


__all__ = ["ClusterStrategy", "METRICS_COLLECTION"]
