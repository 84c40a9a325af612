"""Configuration model for ratecounter policies.

A ``PolicyConfig`` carries everything a counter policy needs: the scope
identifiers, the remote store connection settings, the batching interval and
the cluster storage strategy.
"""

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from ratecounter.exceptions import InvalidConfigurationError

ENV_PREFIX = "RATECOUNTER_"


class PolicyConfig(BaseModel):
    """Configuration for a counter policy.

    Attributes:
        policy: Counter policy name ("local", "cluster" or "redis")
        service_id: Service scope identifier (None for unscoped)
        route_id: Route scope identifier (None for unscoped)
        redis_host: Redis host
        redis_port: Redis port
        redis_username: Optional Redis ACL username
        redis_password: Optional Redis password
        redis_ssl: Connect to Redis over TLS
        redis_ssl_verify: Verify the Redis server certificate
        redis_timeout: Connect and command timeout in milliseconds
        redis_database: Redis database index
        sync_rate: Batch interval in seconds (<= 0 means synchronous)
        cluster_strategy: Storage strategy for the cluster policy
        sqlite_path: Database file for the sqlite strategy
        mongodb_uri: Connection URI for the mongodb strategy
        mongodb_db_name: Database name for the mongodb strategy
        log_level: Logging level
    """

    policy: str = "local"

    # Scope
    service_id: Optional[str] = None
    route_id: Optional[str] = None

    # Redis Configuration
    redis_host: str = "localhost"
    redis_port: int = Field(default=6379, ge=1, le=65535)
    redis_username: Optional[str] = None
    redis_password: Optional[str] = None
    redis_ssl: bool = False
    redis_ssl_verify: bool = False
    redis_timeout: int = Field(default=2000, gt=0)
    redis_database: int = Field(default=0, ge=0)
    sync_rate: float = -1

    # Cluster Configuration
    cluster_strategy: str = "sqlite"
    sqlite_path: str = "ratecounter.db"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "ratecounter"

    # Logging Configuration
    log_level: str = "info"

    @field_validator("policy", "cluster_strategy")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("service_id", "route_id", "redis_username", "redis_password")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not str(value).strip():
            return None
        return value

    @property
    def batched(self) -> bool:
        """Whether the redis policy defers writes to a periodic flush."""
        return self.sync_rate > 0

    @classmethod
    def build(cls, **kwargs: Any) -> "PolicyConfig":
        """Create a config, reporting validation failures as configuration errors.

        Raises:
            InvalidConfigurationError: If any value fails validation
        """
        try:
            return cls(**kwargs)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error.get("loc", ())) or "config"
            raise InvalidConfigurationError(
                field,
                error.get("input"),
                error.get("msg", "validation failed"),
                details={"errors": e.errors(include_url=False)},
            ) from e

    @classmethod
    def from_env(cls, **overrides: Any) -> "PolicyConfig":
        """Create a config from ``RATECOUNTER_*`` environment variables.

        Args:
            **overrides: Explicit values that win over the environment

        Returns:
            Validated PolicyConfig
        """
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            env_value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if env_value is not None:
                values[name] = env_value
        values.update(overrides)
        return cls.build(**values)


__all__ = ["PolicyConfig", "ENV_PREFIX"]
