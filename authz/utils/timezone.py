"""
Timezone Utilities.

Golden Rules:
1. Stores: Always store UTC
2. Expiry checks: Compare timezone-aware UTC datetimes only
3. Policy conditions: ISO 8601 strings, normalized to UTC on read
"""

from datetime import datetime, timezone
from typing import Optional

# UTC constant
UTC = timezone.utc


def utc_now() -> datetime:
    """
    Get current time in UTC (timezone-aware).

    Always use this instead of datetime.utcnow() which returns
    naive datetime.
    """
    return datetime.now(UTC)


def to_utc(dt: datetime) -> datetime:
    """
    Convert datetime to UTC.

    Naive datetimes are assumed to already be UTC (SQLite drops tzinfo).
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_utc_optional(dt: Optional[datetime]) -> Optional[datetime]:
    return to_utc(dt) if dt is not None else None


def from_iso8601(value: str | datetime) -> datetime:
    """
    Parse ISO 8601 string to UTC datetime.

    Handles:
    - "2024-01-15T14:30:00Z"
    - "2024-01-15T09:30:00-05:00"
    - datetime instances (normalized to UTC)

    Raises:
        ValueError: If the string is not ISO 8601
    """
    if isinstance(value, datetime):
        return to_utc(value)
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO 8601 string, got {type(value).__name__}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(value))
