"""Scope resolution and cache key construction.

The cache key is the only join point between local accumulation, remote
storage and independent worker processes, so it must be a pure function of
its inputs.
"""

from typing import Any, Optional, Tuple

EMPTY_UUID = "00000000-0000-0000-0000-000000000000"

KEY_PREFIX = "ratelimit"


def _scope_value(conf: Any, name: str) -> Optional[str]:
    if conf is None:
        return None
    if isinstance(conf, dict):
        return conf.get(name)
    return getattr(conf, name, None)


def get_service_and_route_ids(conf: Any = None) -> Tuple[str, str]:
    """Resolve the (service_id, route_id) scope of a configuration.

    Missing or empty identifiers fall back to ``EMPTY_UUID``.

    Args:
        conf: PolicyConfig, plain dict, or None

    Returns:
        Tuple of (service_id, route_id)
    """
    service_id = _scope_value(conf, "service_id") or EMPTY_UUID
    route_id = _scope_value(conf, "route_id") or EMPTY_UUID
    return str(service_id), str(route_id)


def get_local_key(conf: Any, identifier: str, period: str, period_date: Any) -> str:
    """Build the cache key for one counter bucket.

    Args:
        conf: Configuration carrying the scope identifiers
        identifier: Client identifier being limited
        period: Period name (e.g. "minute")
        period_date: Bucket label for the period

    Returns:
        Key in the form ``ratelimit:<route>:<service>:<identifier>:<bucket>:<period>``
    """
    service_id, route_id = get_service_and_route_ids(conf)
    return (
        f"{KEY_PREFIX}:{route_id}:{service_id}:{identifier}:{period_date}:{period}"
    )


__all__ = ["EMPTY_UUID", "KEY_PREFIX", "get_service_and_route_ids", "get_local_key"]
