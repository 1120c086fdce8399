"""
Built-in condition evaluators.

The set of condition kinds is deliberately small:
- time_window: policy only applies between two instants
- ip_range: policy only applies to callers inside given networks

Usage:
    ResourcePolicy(
        ...,
        conditions={
            "time_window": {"start": "2025-06-01T00:00:00Z", "end": "2025-06-30T23:59:59Z"},
            "ip_range": {"cidrs": ["10.0.0.0/8", "192.168.1.0/24"]},
        },
    )
"""

import ipaddress
from typing import Any

from authz.core.errors import InvalidPolicy
from authz.utils.timezone import from_iso8601

from ..interfaces import ConditionEvaluator, DecisionContext
from ..registry import AuthRegistry


@AuthRegistry.condition("time_window")
class TimeWindowCondition(ConditionEvaluator):
    """
    Check that the evaluation time is inside a window.

    Usage:
        conditions={"time_window": {"start": "2025-01-01T00:00:00Z"}}
        conditions={"time_window": {"start": "...", "end": "..."}}

    Both bounds are inclusive; at least one is required.
    """

    condition_type = "time_window"

    def evaluate(self, expected: Any, context: DecisionContext) -> bool | None:
        if not isinstance(expected, dict):
            raise InvalidPolicy(f"time_window must be an object, got {type(expected).__name__}")

        raw_start = expected.get("start")
        raw_end = expected.get("end")
        if raw_start is None and raw_end is None:
            raise InvalidPolicy("time_window requires 'start' or 'end'")

        try:
            start = from_iso8601(raw_start) if raw_start is not None else None
            end = from_iso8601(raw_end) if raw_end is not None else None
        except ValueError as e:
            raise InvalidPolicy(f"time_window bound is not ISO 8601: {e}") from e

        if start is not None and end is not None and start > end:
            raise InvalidPolicy("time_window start is after end")

        if start is not None and context.now < start:
            return False
        if end is not None and context.now > end:
            return False
        return True


@AuthRegistry.condition("ip_range")
class IpRangeCondition(ConditionEvaluator):
    """
    Check that the caller IP is inside one of the configured networks.

    Usage:
        conditions={"ip_range": {"cidrs": ["10.0.0.0/8"]}}
        conditions={"ip_range": ["10.0.0.0/8", "::1/128"]}

    Returns None (indeterminate) when the caller IP is unknown.
    """

    condition_type = "ip_range"

    def evaluate(self, expected: Any, context: DecisionContext) -> bool | None:
        cidrs = expected.get("cidrs") if isinstance(expected, dict) else expected
        if not isinstance(cidrs, (list, tuple)) or not cidrs:
            raise InvalidPolicy("ip_range requires a non-empty list of CIDRs")

        try:
            networks = [ipaddress.ip_network(str(cidr), strict=False) for cidr in cidrs]
        except ValueError as e:
            raise InvalidPolicy(f"ip_range has an invalid network: {e}") from e

        if not context.client_ip:
            return None

        try:
            address = ipaddress.ip_address(context.client_ip)
        except ValueError:
            return None

        return any(
            address.version == network.version and address in network
            for network in networks
        )
