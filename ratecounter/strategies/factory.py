"""Cluster strategy factory with a registry of storage backends."""

from typing import Any, Callable, Dict, Type

from ratecounter.exceptions import InvalidConfigurationError

from .base import ClusterStrategy

# Registry for strategy implementations
_STRATEGY_REGISTRY: Dict[str, Type[ClusterStrategy]] = {}
# Registry for strategy configuration functions
_STRATEGY_CONFIGURATORS: Dict[str, Callable[[Any], ClusterStrategy]] = {}


def register_strategy(
    name: str,
    strategy_class: Type[ClusterStrategy],
    configurator: Callable[[Any], ClusterStrategy],
) -> None:
    """Register a cluster strategy implementation.

    Args:
        name: Strategy name to register
        strategy_class: Class implementing ClusterStrategy
        configurator: Function building the strategy from a PolicyConfig

    Raises:
        InvalidConfigurationError: If the class is not a ClusterStrategy or
            the name is already registered
    """
    if not (isinstance(strategy_class, type) and issubclass(strategy_class, ClusterStrategy)):
        raise InvalidConfigurationError(
            "cluster_strategy",
            name,
            f"{strategy_class!r} must inherit from ClusterStrategy",
        )

    if name in _STRATEGY_REGISTRY:
        raise InvalidConfigurationError(
            "cluster_strategy", name, "Strategy is already registered"
        )

    _STRATEGY_REGISTRY[name] = strategy_class
    _STRATEGY_CONFIGURATORS[name] = configurator


def unregister_strategy(name: str) -> None:
    """Unregister a cluster strategy.

    Args:
        name: Strategy name to unregister
    """
    _STRATEGY_REGISTRY.pop(name, None)
    _STRATEGY_CONFIGURATORS.pop(name, None)


def list_strategies() -> Dict[str, Type[ClusterStrategy]]:
    """Get all registered strategies.

    Returns:
        Dictionary mapping strategy names to their classes
    """
    return _STRATEGY_REGISTRY.copy()


def get_strategy(conf: Any) -> ClusterStrategy:
    """Build the strategy selected by ``conf.cluster_strategy``.

    Args:
        conf: PolicyConfig

    Returns:
        Configured strategy instance

    Raises:
        InvalidConfigurationError: If the strategy is unknown or fails to build
    """
    name = conf.cluster_strategy
    if name not in _STRATEGY_REGISTRY:
        available = ", ".join(sorted(_STRATEGY_REGISTRY))
        raise InvalidConfigurationError(
            "cluster_strategy",
            name,
            f"Strategy is not registered. Available strategies: {available}",
        )

    try:
        return _STRATEGY_CONFIGURATORS[name](conf)
    except ImportError:
        raise
    except Exception as e:
        raise InvalidConfigurationError(
            "cluster_strategy", name, f"Failed to configure strategy: {e}"
        ) from e


def _register_builtin_strategies() -> None:
    """Register built-in strategy implementations."""
    from .sqlite import SQLiteStrategy

    def sqlite_configurator(conf: Any) -> SQLiteStrategy:
        return SQLiteStrategy(conf.sqlite_path)

    register_strategy("sqlite", SQLiteStrategy, sqlite_configurator)

    from .mongodb import MongoStrategy

    def mongodb_configurator(conf: Any) -> MongoStrategy:
        return MongoStrategy(uri=conf.mongodb_uri, db_name=conf.mongodb_db_name)

    register_strategy("mongodb", MongoStrategy, mongodb_configurator)


_register_builtin_strategies()
