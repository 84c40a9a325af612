"""Shared fixtures for ratecounter tests.

``FakeRedis`` stands in for a redis.asyncio client. It executes the
increment-and-expire scripts in Python with the same semantics as the Lua
versions, so policies can be tested without a Redis server.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from ratecounter.config import PolicyConfig
from ratecounter.remote import RedisConnector

# 2023-11-14 22:13:00 UTC, start of a minute
T0 = 1699999980.0


class FakeClock:
    """Mutable time source."""

    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePipeline:
    """Queues script evaluations until ``execute``."""

    def __init__(self, redis: "FakeRedis", transaction: bool):
        self._redis = redis
        self.transaction = transaction
        self.commands: List[tuple] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc_info: Any) -> bool:
        self.commands = []
        return False

    def eval(self, script: str, numkeys: int, *args: Any) -> "FakePipeline":
        self.commands.append((script, numkeys, args))
        return self

    async def execute(self) -> List[Any]:
        self._redis.pipelines_executed += 1
        if self._redis.yield_on_execute:
            await asyncio.sleep(0)
        if self._redis.fail_pipeline is not None:
            raise self._redis.fail_pipeline
        results = []
        for script, numkeys, args in self.commands:
            key, value, expiration = args[0], args[numkeys], args[numkeys + 1]
            results.append(self._redis.run_increment(script, key, value, expiration))
        return results


class FakeRedis:
    """In-memory stand-in for a redis.asyncio client."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.data: Dict[str, List[Any]] = {}  # key -> [value, expire_at]
        self.get_calls = 0
        self.pipelines_executed = 0
        self.closed = 0
        self.fail_get: Optional[Exception] = None
        self.fail_pipeline: Optional[Exception] = None
        self.fail_close: Optional[Exception] = None
        self.yield_on_execute = False

    def _live(self, key: str) -> Optional[List[Any]]:
        entry = self.data.get(key)
        if entry is None:
            return None
        if entry[1] is not None and entry[1] <= self.clock():
            del self.data[key]
            return None
        return entry

    def run_increment(self, script: str, key: str, value: Any, expiration: Any) -> None:
        exists = self._live(key) is not None
        if exists:
            self.data[key][0] += int(value)
        else:
            self.data[key] = [int(value), None]
            if "expireat" in script:
                self.data[key][1] = float(expiration)
            else:
                self.data[key][1] = self.clock() + float(expiration)
        return None

    def expires_at(self, key: str) -> Optional[float]:
        entry = self._live(key)
        return entry[1] if entry else None

    def set(self, key: str, value: int, expire_at: Optional[float] = None) -> None:
        self.data[key] = [value, expire_at]

    async def get(self, key: str) -> Optional[bytes]:
        self.get_calls += 1
        if self.fail_get is not None:
            raise self.fail_get
        entry = self._live(key)
        if entry is None:
            return None
        return str(entry[0]).encode()

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self, transaction)

    async def aclose(self) -> None:
        self.closed += 1
        if self.fail_close is not None:
            raise self.fail_close


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def redis_conf() -> PolicyConfig:
    return PolicyConfig(policy="redis", sync_rate=0)


@pytest.fixture
def batched_conf() -> PolicyConfig:
    return PolicyConfig(policy="redis", sync_rate=5)


@pytest.fixture
def connector(fake_redis, redis_conf) -> RedisConnector:
    return RedisConnector(redis_conf, client_factory=lambda conf: fake_redis)


@pytest.fixture
def t0() -> float:
    return T0
