"""Counter policies.

Available policies:
- LocalPolicy: node-local counters with native TTL
- ClusterPolicy: durable fleet-wide counters through a storage strategy
- RedisPolicy: fleet-wide counters in Redis, optionally batched

Quick Start:
    from ratecounter.config import PolicyConfig
    from ratecounter.policies import get_policy

    conf = PolicyConfig(policy="redis", sync_rate=5)
    policy = get_policy(conf)
    await policy.increment(conf, {"minute": 100}, "client-A", time.time(), 1)
"""

from .base import CounterPolicy
from .cluster import ClusterPolicy
from .factory import get_policy, list_policies, register_policy, unregister_policy
from .local import LocalPolicy, SharedCounterStore, get_shared_store
from .redis import RedisPolicy

__all__ = [
    "CounterPolicy",
    "LocalPolicy",
    "ClusterPolicy",
    "RedisPolicy",
    "SharedCounterStore",
    "get_shared_store",
    "get_policy",
    "list_policies",
    "register_policy",
    "unregister_policy",
]
