"""
Authorization domain records.

These are plain value objects shared by the stores, the resolver, the
evaluator and the engine. Persistence rows live in authz.models and are
mapped to these by the store adapters.

- RoleAssignment: user holds a role, optionally until expires_at
- PermissionGrant: user holds a direct permission, optionally until expires_at
- ResourcePolicy: conditional ALLOW/DENY override for a resource type or instance
- EffectivePermissionSet: derived per-user result, cached, never persisted
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from authz.core.auth.permissions import PermissionAction
from authz.core.auth.roles import Role


class PolicyEffect(str, Enum):
    """Effect of a matching policy."""
    ALLOW = "ALLOW"
    DENY = "DENY"


def is_active(expires_at: datetime | None, now: datetime) -> bool:
    """Check if a time-bound record is still valid at `now`."""
    return expires_at is None or expires_at > now


@dataclass(frozen=True)
class RoleAssignment:
    """A user's role, optionally time-bound."""
    user_id: str
    role: Role
    expires_at: datetime | None = None
    assigned_by: str | None = None
    assigned_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        return is_active(self.expires_at, now)


@dataclass(frozen=True)
class PermissionGrant:
    """A direct permission granted to a user, bypassing role defaults."""
    user_id: str
    permission_id: str
    expires_at: datetime | None = None
    granted_by: str | None = None
    granted_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        return is_active(self.expires_at, now)


@dataclass(frozen=True)
class ResourcePolicy:
    """
    Conditional override for a (resource, action) combination.

    A policy with resource_id=None applies to every instance of the
    resource type; otherwise it applies to that single instance.
    An empty roles set means "any role".

    Conditions map a condition type to its configuration:

        conditions={
            "time_window": {"start": "2025-01-01T00:00:00Z", "end": "2025-02-01T00:00:00Z"},
            "ip_range": {"cidrs": ["10.0.0.0/8"]},
        }
    """
    resource: str
    effect: PolicyEffect
    actions: frozenset[PermissionAction]
    priority: int = 0
    resource_id: str | None = None
    roles: frozenset[Role] = frozenset()
    conditions: dict[str, Any] = field(default_factory=dict, hash=False)
    description: str | None = None
    id: str = field(default_factory=lambda: str(uuid4()))

    @property
    def is_instance_scoped(self) -> bool:
        return self.resource_id is not None

    def applies_to(self, resource: str, resource_id: str | None) -> bool:
        """Check resource type and instance scoping."""
        if self.resource != resource:
            return False
        return self.resource_id is None or self.resource_id == resource_id

    def targets(self, action: PermissionAction, role: Role) -> bool:
        """Check the policy's action and role filters."""
        if action not in self.actions:
            return False
        return not self.roles or role in self.roles

    def precedence(self) -> tuple[int, int, int, str]:
        """
        Sort key, lowest first wins.

        Priority (highest first), then instance-scoped before global,
        then DENY before ALLOW, then id for a stable order.
        """
        return (
            -self.priority,
            0 if self.is_instance_scoped else 1,
            0 if self.effect is PolicyEffect.DENY else 1,
            self.id,
        )


@dataclass(frozen=True)
class EffectivePermissionSet:
    """
    Currently valid authority of a user.

    Attributes:
        user_id: The user
        role: Effective (highest-level active) role
        level: Level used for hierarchy comparisons
        permissions: Permission ids from role defaults and active direct grants
        implicit: True when the user has no active assignment (implicit GUEST)
        valid_until: Earliest expiry among the assignments and grants it was
            built from; None when none of them expires
    """
    user_id: str
    role: Role
    level: int
    permissions: frozenset[str] = frozenset()
    implicit: bool = False
    valid_until: datetime | None = None

    def is_valid(self, now: datetime) -> bool:
        """Check that nothing the set was built from has expired by `now`."""
        return is_active(self.valid_until, now)

    @property
    def is_super_admin(self) -> bool:
        return self.role is Role.SUPER_ADMIN and not self.implicit

    def has(self, permission_id: str) -> bool:
        """Check a permission id (SUPER_ADMIN is an implicit wildcard)."""
        return self.is_super_admin or permission_id in self.permissions
