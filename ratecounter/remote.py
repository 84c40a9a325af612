"""Redis connection pooling and atomic counter scripts.

Pools are shared process-wide and partitioned by host, port and database.
Authentication and database selection are part of the pool's connection
handshake, so they only run on freshly established connections.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Tuple

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ratecounter.exceptions import (
    RemoteCommandError,
    RemoteConnectionError,
    RemoteStoreError,
)

logger = logging.getLogger(__name__)

# Increment a key and set a relative expiry only when the key is new.
# KEYS[1]: counter key, ARGV[1]: increment, ARGV[2]: ttl in seconds
INCREMENT_EXPIRE_SCRIPT = """
local key, value, expiration = KEYS[1], tonumber(ARGV[1]), ARGV[2]
local exists = redis.call("exists", key)
redis.call("incrby", key, value)
if not exists or exists == 0 then
  redis.call("expire", key, expiration)
end
"""

# Same as above with an absolute expiry.
# KEYS[1]: counter key, ARGV[1]: increment, ARGV[2]: unix timestamp
INCREMENT_EXPIREAT_SCRIPT = """
local key, value, expiration = KEYS[1], tonumber(ARGV[1]), ARGV[2]
local exists = redis.call("exists", key)
redis.call("incrby", key, value)
if not exists or exists == 0 then
  redis.call("expireat", key, expiration)
end
"""

# Connections kept per pool
MAX_POOL_CONNECTIONS = 100

_POOLS: Dict[str, aioredis.ConnectionPool] = {}


def pool_name(conf: Any) -> str:
    """Name of the pool serving a configuration.

    The default database shares the plain ``host:port`` pool. Any other
    database gets its own ``host:port;database`` pool.
    """
    name = f"{conf.redis_host}:{conf.redis_port}"
    if conf.redis_database != 0:
        name = f"{name};{conf.redis_database}"
    return name


def _pool_kwargs(conf: Any) -> Dict[str, Any]:
    timeout = conf.redis_timeout / 1000
    kwargs: Dict[str, Any] = {
        "host": conf.redis_host,
        "port": conf.redis_port,
        "db": conf.redis_database,
        "socket_timeout": timeout,
        "socket_connect_timeout": timeout,
        "max_connections": MAX_POOL_CONNECTIONS,
    }

    if conf.redis_password:
        kwargs["password"] = conf.redis_password
        if conf.redis_username:
            kwargs["username"] = conf.redis_username

    if conf.redis_ssl:
        kwargs["connection_class"] = aioredis.SSLConnection
        kwargs["ssl_cert_reqs"] = "required" if conf.redis_ssl_verify else "none"
        kwargs["ssl_check_hostname"] = bool(conf.redis_ssl_verify)

    return kwargs


def get_pool(conf: Any) -> aioredis.ConnectionPool:
    """Get or create the shared pool for a configuration."""
    name = pool_name(conf)
    pool = _POOLS.get(name)
    if pool is None:
        pool = aioredis.ConnectionPool(**_pool_kwargs(conf))
        _POOLS[name] = pool
        logger.debug(f"Created Redis connection pool '{name}'")
    return pool


async def close_pools() -> None:
    """Disconnect and forget every shared pool."""
    pools = list(_POOLS.values())
    _POOLS.clear()
    for pool in pools:
        try:
            await pool.disconnect()
        except RedisError as e:
            logger.warning(f"failed to disconnect Redis pool: {e}")


def translate_error(error: RedisError) -> RemoteStoreError:
    """Map a redis-py error onto the ratecounter taxonomy."""
    if isinstance(error, (RedisConnectionError, RedisTimeoutError)):
        return RemoteConnectionError(f"failed to connect to Redis: {error}")
    return RemoteCommandError(str(error))


def _default_client_factory(conf: Any) -> aioredis.Redis:
    return aioredis.Redis(connection_pool=get_pool(conf))


class RedisConnector:
    """Hands out pooled Redis clients for one configuration.

    Attributes:
        _conf: PolicyConfig with the Redis connection settings
        _client_factory: Callable building a client from the config
    """

    def __init__(
        self,
        conf: Any,
        client_factory: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        """Initialize the connector.

        Args:
            conf: PolicyConfig with the Redis connection settings
            client_factory: Optional client builder (defaults to the shared pool)
        """
        self._conf = conf
        self._client_factory = client_factory or _default_client_factory

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Any]:
        """Yield a pooled client and hand the connection back on exit.

        Raises:
            RemoteConnectionError: If the connection or authentication fails
            RemoteCommandError: If a command fails
        """
        client = self._client_factory(self._conf)
        try:
            yield client
        except RedisError as e:
            raise translate_error(e) from e
        finally:
            try:
                await client.aclose()
            except RedisError as e:
                logger.error(f"failed to set Redis keepalive: {e}")


async def execute_increments(
    client: Any, script: str, items: Iterable[Tuple[str, int, Any]]
) -> List[Any]:
    """Run one increment script per item as a single pipelined transaction.

    Args:
        client: Redis client
        script: INCREMENT_EXPIRE_SCRIPT or INCREMENT_EXPIREAT_SCRIPT
        items: (key, increment, expiration) triples

    Returns:
        Pipeline results
    """
    async with client.pipeline(transaction=True) as pipe:
        for cache_key, value, expiration in items:
            pipe.eval(script, 1, cache_key, value, expiration)
        return await pipe.execute()


__all__ = [
    "INCREMENT_EXPIRE_SCRIPT",
    "INCREMENT_EXPIREAT_SCRIPT",
    "RedisConnector",
    "close_pools",
    "execute_increments",
    "get_pool",
    "pool_name",
    "translate_error",
]
