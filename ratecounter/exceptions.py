"""Exception hierarchy for ratecounter.

Every failure raised by a counter policy derives from ``RateCounterError`` so
the enforcement layer can catch one type and decide whether to fail open or
fail closed.
"""

from typing import Any, Dict, Optional


class RateCounterError(Exception):
    """Base class for all ratecounter errors.

    Attributes:
        message: Human-readable error message
        details: Optional structured context for logs
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class InvalidConfigurationError(RateCounterError):
    """Raised when a configuration value is missing or invalid."""

    def __init__(
        self,
        config_key: str,
        value: Any,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.config_key = config_key
        self.value = value
        super().__init__(
            f"Invalid configuration for '{config_key}' ({value!r}): {message}",
            details=details,
        )


class CounterStoreError(RateCounterError):
    """Raised when the node-local counter store rejects an operation."""


class RemoteStoreError(RateCounterError):
    """Base class for failures talking to the remote key/value store."""


class RemoteConnectionError(RemoteStoreError):
    """Raised when a connection cannot be established or authenticated."""


class RemoteCommandError(RemoteStoreError):
    """Raised when a command, script or pipeline fails on the remote store."""


class StrategyError(RateCounterError):
    """Raised when a cluster storage strategy fails."""


__all__ = [
    "RateCounterError",
    "InvalidConfigurationError",
    "CounterStoreError",
    "RemoteStoreError",
    "RemoteConnectionError",
    "RemoteCommandError",
    "StrategyError",
]
