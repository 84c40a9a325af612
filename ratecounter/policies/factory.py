"""Counter policy factory with a registry of policy implementations."""

from typing import Any, Callable, Dict, Optional, Type

from ratecounter.config import PolicyConfig
from ratecounter.exceptions import InvalidConfigurationError

from .base import CounterPolicy

# Registry for policy implementations
_POLICY_REGISTRY: Dict[str, Type[CounterPolicy]] = {}
# Registry for policy configuration functions
_POLICY_CONFIGURATORS: Dict[str, Callable[[Any], CounterPolicy]] = {}


def register_policy(
    name: str,
    policy_class: Type[CounterPolicy],
    configurator: Optional[Callable[[Any], CounterPolicy]] = None,
) -> None:
    """Register a counter policy implementation.

    Args:
        name: Policy name to register
        policy_class: Class implementing CounterPolicy
        configurator: Optional function building the policy from a config

    Raises:
        InvalidConfigurationError: If the class is not a CounterPolicy or the
            name is already registered
    """
    if not (isinstance(policy_class, type) and issubclass(policy_class, CounterPolicy)):
        raise InvalidConfigurationError(
            "policy", name, f"{policy_class!r} must inherit from CounterPolicy"
        )

    if name in _POLICY_REGISTRY:
        raise InvalidConfigurationError("policy", name, "Policy is already registered")

    _POLICY_REGISTRY[name] = policy_class
    _POLICY_CONFIGURATORS[name] = configurator or (lambda conf: policy_class(conf))


def unregister_policy(name: str) -> None:
    """Unregister a counter policy.

    Args:
        name: Policy name to unregister
    """
    _POLICY_REGISTRY.pop(name, None)
    _POLICY_CONFIGURATORS.pop(name, None)


def list_policies() -> Dict[str, Type[CounterPolicy]]:
    """Get all registered policies.

    Returns:
        Dictionary mapping policy names to their classes
    """
    return _POLICY_REGISTRY.copy()


def get_policy(conf: Optional[PolicyConfig] = None) -> CounterPolicy:
    """Build the counter policy selected by ``conf.policy``.

    Args:
        conf: PolicyConfig (defaults to one loaded from the environment)

    Returns:
        Configured policy instance

    Raises:
        InvalidConfigurationError: If the policy is not registered
    """
    if conf is None:
        conf = PolicyConfig.from_env()

    if conf.policy not in _POLICY_REGISTRY:
        available = ", ".join(sorted(_POLICY_REGISTRY))
        raise InvalidConfigurationError(
            "policy",
            conf.policy,
            f"Policy is not registered. Available policies: {available}",
        )

    return _POLICY_CONFIGURATORS[conf.policy](conf)


def _register_builtin_policies() -> None:
    """Register built-in policy implementations."""
    from .cluster import ClusterPolicy
    from .local import LocalPolicy
    from .redis import RedisPolicy

    register_policy("local", LocalPolicy)
    register_policy("cluster", ClusterPolicy)
    register_policy("redis", RedisPolicy)


_register_builtin_policies()
