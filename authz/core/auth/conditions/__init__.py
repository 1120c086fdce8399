"""
Condition evaluators for resource policies.

Built-in conditions:
- time_window: Policy applies only inside a time range
- ip_range: Policy applies only to callers from given networks
"""

from .builtin import (
    TimeWindowCondition,
    IpRangeCondition,
)

__all__ = [
    "TimeWindowCondition",
    "IpRangeCondition",
]
