"""Time periods, bucket labels and bucket expirations.

A period is a named window granularity. For a given instant each period
yields exactly one bucket label: the UTC start of the bucket expressed in
epoch milliseconds. Month and year buckets are calendar aligned.
"""

from datetime import datetime, timezone
from typing import Dict, Tuple

PERIODS: Tuple[str, ...] = ("second", "minute", "hour", "day", "month", "year")

# Seconds until a bucket for the period naturally expires
EXPIRATION: Dict[str, int] = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "month": 2592000,
    "year": 31536000,
}


def validate_period(period: str) -> str:
    """Ensure a period name is one of the supported periods.

    Args:
        period: Period name

    Returns:
        The period name unchanged

    Raises:
        ValueError: If the period is unknown
    """
    if period not in EXPIRATION:
        raise ValueError(
            f"Unknown period: '{period}'. Valid options: {', '.join(PERIODS)}"
        )
    return period


def _to_millis(dt: datetime) -> int:
    return int(dt.timestamp()) * 1000


def get_timestamps(now: float) -> Dict[str, int]:
    """Compute the bucket label of every period for an instant.

    Args:
        now: UNIX time in seconds

    Returns:
        Mapping of period name to the bucket start in epoch milliseconds
    """
    stamp = datetime.fromtimestamp(int(now), tz=timezone.utc)

    second = stamp.replace(microsecond=0)
    minute = second.replace(second=0)
    hour = minute.replace(minute=0)
    day = hour.replace(hour=0)
    month = day.replace(day=1)
    year = month.replace(month=1)

    return {
        "second": _to_millis(second),
        "minute": _to_millis(minute),
        "hour": _to_millis(hour),
        "day": _to_millis(day),
        "month": _to_millis(month),
        "year": _to_millis(year),
    }


__all__ = ["PERIODS", "EXPIRATION", "validate_period", "get_timestamps"]
