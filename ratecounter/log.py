"""Logging setup for ratecounter.

Modules log through ``logging.getLogger(__name__)``. Applications embedding the
counters can call ``configure_logging`` once at startup.
"""

import logging
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Union[str, int] = "info", fmt: Optional[str] = None) -> None:
    """Configure root logging for processes that host the counters.

    Args:
        level: Level name (e.g. "info") or numeric level
        fmt: Optional format string (defaults to LOG_FORMAT)
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(level=level, format=fmt or LOG_FORMAT)
    logging.getLogger("ratecounter").setLevel(level)


__all__ = ["configure_logging", "LOG_FORMAT"]
