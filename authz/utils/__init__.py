"""Utility functions."""

from authz.utils.timezone import (
    UTC,
    utc_now,
    to_utc,
    to_utc_optional,
    from_iso8601,
)

__all__ = [
    # Timezone
    "UTC",
    "utc_now",
    "to_utc",
    "to_utc_optional",
    "from_iso8601",
]
