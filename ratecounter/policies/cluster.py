"""Cluster counter policy.

Every call is a synchronous, durable write or read through the storage
strategy selected at configuration time. There is no batching.
"""

import logging
from typing import Any, Mapping, Optional

from ratecounter.exceptions import RateCounterError, StrategyError
from ratecounter.keys import get_service_and_route_ids
from ratecounter.periods import validate_period
from ratecounter.strategies import ClusterStrategy, get_strategy

from .base import CounterPolicy

logger = logging.getLogger(__name__)


class ClusterPolicy(CounterPolicy):
    """Counter policy delegating to a durable cluster storage strategy."""

    name = "cluster"

    def __init__(self, conf: Any = None, strategy: Optional[ClusterStrategy] = None):
        """Initialize the cluster policy.

        Args:
            conf: PolicyConfig used to select the strategy
            strategy: Explicit strategy (overrides ``conf.cluster_strategy``)
        """
        if strategy is None:
            if conf is None:
                raise ValueError("ClusterPolicy requires a config or a strategy")
            strategy = get_strategy(conf)
        self._strategy = strategy

    @property
    def strategy(self) -> ClusterStrategy:
        return self._strategy

    async def increment(
        self,
        conf: Any,
        limits: Mapping[str, Any],
        identifier: str,
        now: float,
        value: int = 1,
    ) -> bool:
        service_id, route_id = get_service_and_route_ids(conf)

        try:
            return await self._strategy.increment(
                limits, identifier, now, service_id, route_id, value
            )
        except Exception as e:
            logger.error(
                f"cluster policy: could not increment {self._strategy.name} counter: {e}"
            )
            if isinstance(e, RateCounterError):
                raise
            raise StrategyError(str(e)) from e

    async def usage(self, conf: Any, identifier: str, period: str, now: float) -> int:
        validate_period(period)
        service_id, route_id = get_service_and_route_ids(conf)

        try:
            row = await self._strategy.find(identifier, period, now, service_id, route_id)
        except Exception as e:
            logger.error(
                f"cluster policy: could not read {self._strategy.name} counter: {e}"
            )
            if isinstance(e, RateCounterError):
                raise
            raise StrategyError(str(e)) from e

        if row and row.get("value") is not None and row["value"] > 0:
            return int(row["value"])

        return 0

    async def close(self) -> None:
        await self._strategy.close()


__all__ = ["ClusterPolicy"]
