"""
Centralized datetime handling.

Timestamps are stored as naive UTC (the column type carries no zone), so
every value entering the core goes through ``to_naive_utc`` and "now" always
comes from ``utcnow``.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as naive UTC. Single source of truth for "now"."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
