"""
Audit sink protocol.
Implementations: LogAuditSink, DatabaseAuditSink
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from authz.utils.timezone import utc_now


class AuditEventType(str, Enum):
    """Kinds of audit events."""
    DECISION = "authorization.decision"
    ROLE_ASSIGNED = "role.assigned"
    ROLE_REVOKED = "role.revoked"
    PERMISSION_GRANTED = "permission.granted"
    PERMISSION_REVOKED = "permission.revoked"
    POLICY_UPSERTED = "policy.upserted"
    POLICY_DELETED = "policy.deleted"
    ROLE_DEFAULTS_CHANGED = "role_defaults.changed"
    MANAGEMENT_DENIED = "management.denied"


@dataclass(frozen=True)
class AuditEvent:
    """
    Structured audit event.

    For decisions, user_id is the subject of the check; for administrative
    events it is the acting user and the target is in `extra`.
    """
    user_id: str
    resource: str
    action: str
    verdict: str
    reason: str
    resource_id: str | None = None
    actor_ip: str | None = None
    detail: str | None = None
    policy_id: str | None = None
    event_type: AuditEventType = AuditEventType.DECISION
    timestamp: datetime = field(default_factory=utc_now)
    extra: dict[str, Any] = field(default_factory=dict, hash=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for logging/serialization."""
        data = asdict(self)
        data["event_type"] = self.event_type.value
        data["timestamp"] = self.timestamp.isoformat()
        return data


class AuditSink(Protocol):
    """Protocol for audit/security-event sinks."""

    async def emit(self, event: AuditEvent) -> None:
        """Record an event. May raise; callers log and continue."""
        ...
