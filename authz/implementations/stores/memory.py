"""
In-memory grant and policy stores for development and testing.

Note: Not suitable for production or multi-process deployments.
Data is not persisted and not shared between processes.
"""

from __future__ import annotations

from datetime import datetime

from authz.core.auth.models import PermissionGrant, ResourcePolicy, RoleAssignment
from authz.core.auth.permissions import DEFAULT_ROLE_PERMISSIONS, normalize_permission_id
from authz.core.auth.roles import Role


class MemoryGrantStore:
    """
    In-memory grant store.

    Usage:
        store = MemoryGrantStore()
        await store.save_role_assignment(RoleAssignment(user_id="u1", role=Role.EDITOR))
        await store.list_active_role_assignments("u1", utc_now())
    """

    def __init__(self, role_defaults: dict[Role, frozenset[str]] | None = None):
        self._assignments: dict[tuple[str, Role], RoleAssignment] = {}
        self._grants: dict[tuple[str, str], PermissionGrant] = {}
        self._defaults: dict[Role, frozenset[str]] = dict(
            role_defaults if role_defaults is not None else DEFAULT_ROLE_PERMISSIONS
        )

    async def list_active_role_assignments(
        self,
        user_id: str,
        now: datetime,
    ) -> list[RoleAssignment]:
        return [
            assignment
            for (uid, _), assignment in self._assignments.items()
            if uid == user_id and assignment.is_active(now)
        ]

    async def list_active_permission_grants(
        self,
        user_id: str,
        now: datetime,
    ) -> list[PermissionGrant]:
        return [
            grant
            for (uid, _), grant in self._grants.items()
            if uid == user_id and grant.is_active(now)
        ]

    async def default_permissions_for_role(self, role: Role) -> frozenset[str]:
        return self._defaults.get(role, frozenset())

    async def save_role_assignment(self, assignment: RoleAssignment) -> RoleAssignment:
        self._assignments[(assignment.user_id, assignment.role)] = assignment
        return assignment

    async def delete_role_assignment(self, user_id: str, role: Role) -> bool:
        return self._assignments.pop((user_id, role), None) is not None

    async def save_permission_grant(self, grant: PermissionGrant) -> PermissionGrant:
        self._grants[(grant.user_id, normalize_permission_id(grant.permission_id))] = grant
        return grant

    async def delete_permission_grant(self, user_id: str, permission_id: str) -> bool:
        key = (user_id, normalize_permission_id(permission_id))
        return self._grants.pop(key, None) is not None

    async def set_role_defaults(self, role: Role, permission_ids: frozenset[str]) -> None:
        self._defaults[role] = frozenset(permission_ids)

    async def purge_expired(self, now: datetime) -> int:
        expired_assignments = [k for k, v in self._assignments.items() if not v.is_active(now)]
        expired_grants = [k for k, v in self._grants.items() if not v.is_active(now)]
        for key in expired_assignments:
            del self._assignments[key]
        for key in expired_grants:
            del self._grants[key]
        return len(expired_assignments) + len(expired_grants)


class MemoryPolicyStore:
    """In-memory policy store."""

    def __init__(self, policies: list[ResourcePolicy] | None = None):
        self._policies: dict[str, ResourcePolicy] = {p.id: p for p in policies or []}

    async def list_policies(
        self,
        resource: str,
        resource_id: str | None = None,
    ) -> list[ResourcePolicy]:
        return [
            policy
            for policy in self._policies.values()
            if policy.applies_to(resource, resource_id)
        ]

    async def get_policy(self, policy_id: str) -> ResourcePolicy | None:
        return self._policies.get(policy_id)

    async def save_policy(self, policy: ResourcePolicy) -> ResourcePolicy:
        self._policies[policy.id] = policy
        return policy

    async def delete_policy(self, policy_id: str) -> bool:
        return self._policies.pop(policy_id, None) is not None
