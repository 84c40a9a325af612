"""Durable storage strategies for the cluster counter policy.

Available strategies:
- sqlite: counters in a SQLite file (aiosqlite)
- mongodb: counters in a MongoDB collection (motor)

Custom strategies can be added with ``register_strategy``.
"""

from .base import METRICS_COLLECTION, ClusterStrategy
from .factory import (
    get_strategy,
    list_strategies,
    register_strategy,
    unregister_strategy,
)
from .mongodb import MongoStrategy
from .sqlite import SQLiteStrategy

__all__ = [
    "ClusterStrategy",
    "METRICS_COLLECTION",
    "MongoStrategy",
    "SQLiteStrategy",
    "get_strategy",
    "list_strategies",
    "register_strategy",
    "unregister_strategy",
]
