"""Audit log model for authorization decisions and administrative changes."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from authz.models.base import Base, JSONType, UUIDMixin


class AuthorizationAuditLog(Base, UUIDMixin):
    """
    Immutable record of a DENY, a policy-driven verdict, or an admin mutation.

    For decisions user_id is the subject; for admin events it is the actor.
    """

    __tablename__ = "authorization_audit_logs"

    event_type: Mapped[str] = mapped_column(String(50), index=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    actor_ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)  # IPv6 max length

    # What was requested
    resource: Mapped[str] = mapped_column(String(100))
    resource_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    action: Mapped[str] = mapped_column(String(50))

    # Outcome
    verdict: Mapped[str] = mapped_column(String(8))
    reason: Mapped[str] = mapped_column(String(50))
    policy_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extra_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Request context
    request_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuthorizationAuditLog {self.verdict} {self.resource}:{self.action}>"
