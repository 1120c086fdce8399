"""
Authorization API schemas.
"""

from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from authz.core.auth import (
    EffectivePermissionSet,
    PermissionAction,
    PermissionGrant,
    PolicyEffect,
    ResourcePolicy,
    Role,
    RoleAssignment,
)


# ============================================================
# CATALOGUE
# ============================================================

class RoleResponse(BaseModel):
    """Role with its level and default permissions."""
    name: Role
    level: int
    description: str
    default_permissions: list[str]


class PermissionResponse(BaseModel):
    """Catalogue permission."""
    id: str
    resource: str
    action: PermissionAction


class EffectivePermissionsResponse(BaseModel):
    """A user's effective role and permission ids."""
    user_id: str
    role: Role
    level: int
    implicit: bool
    is_super_admin: bool
    permissions: list[str]

    @classmethod
    def from_set(cls, value: EffectivePermissionSet) -> "EffectivePermissionsResponse":
        return cls(
            user_id=value.user_id,
            role=value.role,
            level=value.level,
            implicit=value.implicit,
            is_super_admin=value.is_super_admin,
            permissions=sorted(value.permissions),
        )


# ============================================================
# DECISIONS
# ============================================================

class CheckRequest(BaseModel):
    """Authorization check for a user."""
    resource: str = Field(..., min_length=1, max_length=100)
    action: PermissionAction
    resource_id: str | None = Field(None, max_length=255)


class CheckResponse(BaseModel):
    """Verdict of a check."""
    allowed: bool
    reason: str


# ============================================================
# ASSIGNMENTS AND GRANTS
# ============================================================

class AssignRoleRequest(BaseModel):
    """Role assignment request."""
    role: Role
    expires_at: datetime | None = None


class RoleAssignmentResponse(BaseModel):
    """Role assignment."""
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    role: Role
    expires_at: datetime | None = None
    assigned_by: str | None = None
    assigned_at: datetime | None = None

    @classmethod
    def from_assignment(cls, value: RoleAssignment) -> "RoleAssignmentResponse":
        return cls.model_validate(value)


class GrantPermissionRequest(BaseModel):
    """Direct permission grant request."""
    permission: str = Field(..., min_length=3, max_length=100, examples=["events.delete"])
    expires_at: datetime | None = None


class PermissionGrantResponse(BaseModel):
    """Direct permission grant."""
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    permission_id: str
    expires_at: datetime | None = None
    granted_by: str | None = None
    granted_at: datetime | None = None

    @classmethod
    def from_grant(cls, value: PermissionGrant) -> "PermissionGrantResponse":
        return cls.model_validate(value)


class RevokeResponse(BaseModel):
    """Result of a revoke."""
    removed: bool


# ============================================================
# POLICIES
# ============================================================

class PolicyRequest(BaseModel):
    """Policy create/replace request. Omit id to create."""
    id: str | None = Field(None, max_length=36)
    resource: str = Field(..., min_length=1, max_length=100)
    resource_id: str | None = Field(None, max_length=255)
    priority: int = 0
    effect: PolicyEffect
    roles: list[Role] = Field(default_factory=list)
    actions: list[PermissionAction] = Field(..., min_length=1)
    conditions: dict[str, Any] = Field(default_factory=dict)
    description: str | None = None

    def to_policy(self) -> ResourcePolicy:
        return ResourcePolicy(
            id=self.id or str(uuid4()),
            resource=self.resource,
            resource_id=self.resource_id,
            priority=self.priority,
            effect=self.effect,
            roles=frozenset(self.roles),
            actions=frozenset(self.actions),
            conditions=dict(self.conditions),
            description=self.description,
        )


class PolicyResponse(BaseModel):
    """Stored policy."""
    id: str
    resource: str
    resource_id: str | None
    priority: int
    effect: PolicyEffect
    roles: list[Role]
    actions: list[PermissionAction]
    conditions: dict[str, Any]
    description: str | None

    @classmethod
    def from_policy(cls, value: ResourcePolicy) -> "PolicyResponse":
        return cls(
            id=value.id,
            resource=value.resource,
            resource_id=value.resource_id,
            priority=value.priority,
            effect=value.effect,
            roles=sorted(value.roles, key=lambda r: r.value),
            actions=sorted(value.actions, key=lambda a: a.value),
            conditions=value.conditions,
            description=value.description,
        )
