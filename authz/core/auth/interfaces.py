"""
Authorization interfaces - Core abstractions.

These define the contracts shared by the decision engine and its parts.
Application code depends on Verdict and DecisionEngine.authorize only.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from authz.utils.timezone import utc_now


# ============================================================
# VERDICT
# ============================================================

class Reason(str, Enum):
    """Reasons a verdict can carry."""
    ROLE_OR_GRANT = "role/grant permission"
    POLICY_ALLOW = "policy allow"
    POLICY_DENY = "policy deny"
    NO_PERMISSION = "no permission"
    STORE_UNAVAILABLE = "store unavailable"
    UNKNOWN_ROLE = "unknown role"
    UNKNOWN_PERMISSION = "unknown permission"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Verdict:
    """
    Result of an authorization decision.

    Attributes:
        allowed: Whether the action is permitted
        reason: One of the Reason values; never carries internal detail
    """
    allowed: bool
    reason: str

    @classmethod
    def allow(cls, reason: Reason) -> "Verdict":
        return cls(allowed=True, reason=reason.value)

    @classmethod
    def deny(cls, reason: "Reason | str") -> "Verdict":
        return cls(allowed=False, reason=reason.value if isinstance(reason, Reason) else reason)

    @property
    def policy_driven(self) -> bool:
        return self.reason in (Reason.POLICY_ALLOW.value, Reason.POLICY_DENY.value)


# ============================================================
# DECISION CONTEXT
# ============================================================

@dataclass(frozen=True)
class DecisionContext:
    """
    Request attributes that policy conditions may inspect.

    Attributes:
        now: Evaluation time (UTC); conditions referencing wall-clock time use it
        client_ip: Caller IP address, if known
        metadata: Additional attributes for custom conditions
    """
    now: datetime = field(default_factory=utc_now)
    client_ip: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, hash=False)


# ============================================================
# CONDITION EVALUATOR
# ============================================================

class ConditionEvaluator(ABC):
    """
    Evaluates a single kind of policy condition.

    Evaluation is a pure function of (configuration, context).

    Returns:
        True when the condition holds, False when it does not, None when the
        context lacks the attribute the condition needs (indeterminate).

    Raises:
        InvalidPolicy: If the configuration is malformed
    """

    @property
    @abstractmethod
    def condition_type(self) -> str:
        """Unique identifier for this condition type."""
        pass

    @abstractmethod
    def evaluate(self, expected: Any, context: DecisionContext) -> bool | None:
        """Evaluate the condition against the request context."""
        pass
