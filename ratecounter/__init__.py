"""
ratecounter - Counting core for distributed rate limiting.

ratecounter tracks, per identifier and per time window, how many units of
traffic were consumed, so an enforcement layer can allow or reject requests.

Key Features:
- Node-local counters with native per-key TTL
- Durable fleet-wide counters through pluggable storage strategies
  (SQLite, MongoDB)
- Redis-backed counters with atomic increment-and-expire scripts
- Optional batched Redis sync that trades strict accuracy for throughput

Main Exports (Import from top level):
    Policies:
        - CounterPolicy: Policy interface
        - LocalPolicy, ClusterPolicy, RedisPolicy: Built-in policies
        - get_policy: Policy factory

    Configuration:
        - PolicyConfig: Policy configuration model

    Keys & Periods:
        - get_local_key: Cache key construction
        - get_timestamps: Bucket labels for an instant
        - EXPIRATION: Bucket expiration per period

Example:
    >>> from ratecounter import PolicyConfig, get_policy
    >>>
    >>> conf = PolicyConfig(policy="local")
    >>> policy = get_policy(conf)
    >>> await policy.increment(conf, {"minute": True}, "client-A", now, 1)
    >>> await policy.usage(conf, "client-A", "minute", now)
    1
"""

from .config import PolicyConfig
from .exceptions import (
    CounterStoreError,
    InvalidConfigurationError,
    RateCounterError,
    RemoteCommandError,
    RemoteConnectionError,
    RemoteStoreError,
    StrategyError,
)
from .keys import EMPTY_UUID, get_local_key, get_service_and_route_ids
from .log import configure_logging
from .periods import EXPIRATION, PERIODS, get_timestamps
from .policies import (
    ClusterPolicy,
    CounterPolicy,
    LocalPolicy,
    RedisPolicy,
    get_policy,
    register_policy,
)

__version__ = "0.1.0"

__all__ = [
    "PolicyConfig",
    "CounterPolicy",
    "LocalPolicy",
    "ClusterPolicy",
    "RedisPolicy",
    "get_policy",
    "register_policy",
    "EMPTY_UUID",
    "get_local_key",
    "get_service_and_route_ids",
    "EXPIRATION",
    "PERIODS",
    "get_timestamps",
    "configure_logging",
    "RateCounterError",
    "InvalidConfigurationError",
    "CounterStoreError",
    "RemoteStoreError",
    "RemoteConnectionError",
    "RemoteCommandError",
    "StrategyError",
]
