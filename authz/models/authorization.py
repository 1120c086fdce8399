"""
Authorization tables.

- role_assignments: user -> role, optionally time-bound
- permission_grants: user -> permission id, optionally time-bound
- role_default_permissions: role -> permission id (editable default table)
- resource_policies: conditional ALLOW/DENY overrides

User ids are opaque strings issued by the identity layer.
Expired rows stay until the hygiene sweep removes them; readers filter them.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from authz.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class RoleAssignmentRow(Base, UUIDMixin):
    """A user's role; one row per (user, role)."""

    __tablename__ = "role_assignments"
    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_role_assignments_user_role"),
    )

    user_id: Mapped[str] = mapped_column(String(255), index=True)
    role: Mapped[str] = mapped_column(String(32))
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )
    assigned_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<RoleAssignment {self.user_id}:{self.role}>"


class PermissionGrantRow(Base, UUIDMixin):
    """A direct permission; one row per (user, permission)."""

    __tablename__ = "permission_grants"
    __table_args__ = (
        UniqueConstraint("user_id", "permission_id", name="uq_permission_grants_user_permission"),
    )

    user_id: Mapped[str] = mapped_column(String(255), index=True)
    permission_id: Mapped[str] = mapped_column(String(100))
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )
    granted_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<PermissionGrant {self.user_id}:{self.permission_id}>"


class RoleDefaultPermissionRow(Base):
    """One default permission of a role."""

    __tablename__ = "role_default_permissions"

    role: Mapped[str] = mapped_column(String(32), primary_key=True)
    permission_id: Mapped[str] = mapped_column(String(100), primary_key=True)


class ResourcePolicyRow(Base, TimestampMixin):
    """
    Conditional override for a resource type (resource_id NULL) or instance.

    roles/actions are JSON lists of enum names; conditions is a JSON object
    keyed by condition type.
    """

    __tablename__ = "resource_policies"
    __table_args__ = (
        Index("ix_resource_policies_resource_instance", "resource", "resource_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    resource: Mapped[str] = mapped_column(String(100))
    resource_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    effect: Mapped[str] = mapped_column(String(8))
    roles: Mapped[list[str]] = mapped_column(JSONType, default=list)
    actions: Mapped[list[str]] = mapped_column(JSONType, default=list)
    conditions: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ResourcePolicy {self.id} {self.effect} {self.resource}:{self.resource_id}>"
