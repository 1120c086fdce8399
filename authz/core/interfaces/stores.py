"""
Grant and policy store protocols.

These are the persistence contracts the engine needs; the storage engine
behind them is up to the implementation.

Implementations: MemoryGrantStore/MemoryPolicyStore, SQLAlchemyGrantStore/SQLAlchemyPolicyStore

Implementations must raise StoreUnavailable on I/O failure, and
UnknownRole/UnknownPermission when a stored row references an undefined value.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from authz.core.auth.models import PermissionGrant, ResourcePolicy, RoleAssignment
    from authz.core.auth.roles import Role


class GrantStore(Protocol):
    """
    Protocol for role assignments, direct grants and role defaults.

    "Active" means not expired at `now`; expired rows are filtered,
    never deleted, by the read methods.
    """

    async def list_active_role_assignments(
        self,
        user_id: str,
        now: datetime,
    ) -> list[RoleAssignment]:
        """List role assignments of a user that are valid at `now`."""
        ...

    async def list_active_permission_grants(
        self,
        user_id: str,
        now: datetime,
    ) -> list[PermissionGrant]:
        """List direct permission grants of a user that are valid at `now`."""
        ...

    async def default_permissions_for_role(self, role: Role) -> frozenset[str]:
        """Get the default permission ids implied by a role."""
        ...

    async def save_role_assignment(self, assignment: RoleAssignment) -> RoleAssignment:
        """Create or replace the (user, role) assignment."""
        ...

    async def delete_role_assignment(self, user_id: str, role: Role) -> bool:
        """Remove the (user, role) assignment. Returns True if removed."""
        ...

    async def save_permission_grant(self, grant: PermissionGrant) -> PermissionGrant:
        """Create or replace the (user, permission) grant."""
        ...

    async def delete_permission_grant(self, user_id: str, permission_id: str) -> bool:
        """Remove the (user, permission) grant. Returns True if removed."""
        ...

    async def set_role_defaults(self, role: Role, permission_ids: frozenset[str]) -> None:
        """Replace the default permissions of a role."""
        ...

    async def purge_expired(self, now: datetime) -> int:
        """Delete assignments and grants expired at `now`. Returns count deleted."""
        ...


class PolicyStore(Protocol):
    """Protocol for resource policies."""

    async def list_policies(
        self,
        resource: str,
        resource_id: str | None = None,
    ) -> list[ResourcePolicy]:
        """
        List policies for a resource type.

        Returns global policies (resource_id is None) plus, when resource_id
        is given, the policies scoped to that instance.
        """
        ...

    async def get_policy(self, policy_id: str) -> ResourcePolicy | None:
        """Get policy by ID."""
        ...

    async def save_policy(self, policy: ResourcePolicy) -> ResourcePolicy:
        """Create or replace a policy (keyed by id)."""
        ...

    async def delete_policy(self, policy_id: str) -> bool:
        """Delete a policy. Returns True if deleted."""
        ...
