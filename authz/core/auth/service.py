"""
Authorization administration service.

Mutations of role assignments, direct grants, policies and role defaults.
Every operation is gated, audited, and invalidates the affected cache
entries before returning.

Gates:
- Target mutations: actor must be able to manage the target user
- assign_role: actor must also outrank the assigned role
- grant_permission: actor must hold the permission (or be SUPER_ADMIN)
- Policies: actor needs MANAGE on the policy's resource and must outrank
  every role the policy names (a policy for any role: SUPER_ADMIN only)
- Role defaults: SUPER_ADMIN only

Usage:
    service = AuthorizationAdminService(engine, grant_store, policy_store, audit_sink)

    await service.assign_role(admin_id, user_id, Role.EDITOR)
    await service.revoke_permission(admin_id, user_id, "events.delete")
"""

from datetime import datetime
from typing import Any

import structlog

from authz.core.errors import ManagementDenied, PolicyNotFound
from authz.core.interfaces.audit import AuditEvent, AuditEventType, AuditSink
from authz.core.interfaces.stores import GrantStore, PolicyStore
from authz.utils.timezone import to_utc_optional, utc_now

from .engine import DecisionEngine
from .evaluator import PolicyEvaluator
from .models import EffectivePermissionSet, PermissionGrant, ResourcePolicy, RoleAssignment
from .permissions import PermissionAction, normalize_permission_id, permission_id
from .roles import Role, parse_role

logger = structlog.get_logger(__name__)


class AuthorizationAdminService:
    """
    Gated mutations of authorization data.

    Raises ManagementDenied when the actor is not allowed to perform an
    operation; store and validation errors propagate unchanged.
    """

    def __init__(
        self,
        engine: DecisionEngine,
        grant_store: GrantStore,
        policy_store: PolicyStore,
        audit_sink: AuditSink | None = None,
    ):
        self.engine = engine
        self.grant_store = grant_store
        self.policy_store = policy_store
        self.audit_sink = audit_sink

    @property
    def hierarchy(self):
        return self.engine.hierarchy

    # ============================================================
    # ROLE ASSIGNMENTS
    # ============================================================

    async def assign_role(
        self,
        actor_id: str,
        target_user_id: str,
        role: Role | str,
        expires_at: datetime | None = None,
        *,
        actor_ip: str | None = None,
    ) -> RoleAssignment:
        """
        Assign a role to a user (replaces an existing assignment of that role).

        Args:
            actor_id: User performing the change
            target_user_id: User receiving the role
            role: Role to assign
            expires_at: Optional expiry (UTC)

        Raises:
            ManagementDenied: If the actor cannot manage the target or the role
            UnknownRole: If the role is not defined
        """
        role = parse_role(role)
        await self._require_manage_user(actor_id, target_user_id, "assign_role", actor_ip)

        actor = await self.engine.effective_permissions(actor_id)
        if not self.hierarchy.can_manage_levels(
            actor.role, actor.level, role, self.hierarchy.level(role)
        ):
            await self._deny(
                actor_id,
                "assign_role",
                f"{actor.role.value} cannot assign {role.value}",
                actor_ip,
                target_user_id=target_user_id,
            )

        assignment = await self.grant_store.save_role_assignment(
            RoleAssignment(
                user_id=target_user_id,
                role=role,
                expires_at=to_utc_optional(expires_at),
                assigned_by=actor_id,
                assigned_at=utc_now(),
            )
        )
        await self._invalidate(target_user_id)

        logger.info("Role assigned", actor_id=actor_id, target_user_id=target_user_id, role=role.value)
        await self._audit(
            AuditEventType.ROLE_ASSIGNED,
            actor_id,
            "users",
            actor_ip,
            target_user_id=target_user_id,
            role=role.value,
            expires_at=assignment.expires_at.isoformat() if assignment.expires_at else None,
        )
        return assignment

    async def revoke_role(
        self,
        actor_id: str,
        target_user_id: str,
        role: Role | str,
        *,
        actor_ip: str | None = None,
    ) -> bool:
        """
        Remove a role from a user.

        Returns:
            True if an assignment was removed
        """
        role = parse_role(role)
        await self._require_manage_user(actor_id, target_user_id, "revoke_role", actor_ip)

        removed = await self.grant_store.delete_role_assignment(target_user_id, role)
        await self._invalidate(target_user_id)

        logger.info(
            "Role revoked",
            actor_id=actor_id,
            target_user_id=target_user_id,
            role=role.value,
            removed=removed,
        )
        await self._audit(
            AuditEventType.ROLE_REVOKED,
            actor_id,
            "users",
            actor_ip,
            target_user_id=target_user_id,
            role=role.value,
            removed=removed,
        )
        return removed

    # ============================================================
    # DIRECT GRANTS
    # ============================================================

    async def grant_permission(
        self,
        actor_id: str,
        target_user_id: str,
        permission: str,
        expires_at: datetime | None = None,
        *,
        actor_ip: str | None = None,
    ) -> PermissionGrant:
        """
        Grant a permission directly to a user.

        Raises:
            ManagementDenied: If the actor cannot manage the target or lacks the permission
            UnknownPermission: If the permission id is not valid
        """
        pid = normalize_permission_id(permission)
        await self._require_manage_user(actor_id, target_user_id, "grant_permission", actor_ip)

        actor = await self.engine.effective_permissions(actor_id)
        if not actor.has(pid):
            await self._deny(
                actor_id,
                "grant_permission",
                f"Actor does not hold {pid}",
                actor_ip,
                target_user_id=target_user_id,
            )

        grant = await self.grant_store.save_permission_grant(
            PermissionGrant(
                user_id=target_user_id,
                permission_id=pid,
                expires_at=to_utc_optional(expires_at),
                granted_by=actor_id,
                granted_at=utc_now(),
            )
        )
        await self._invalidate(target_user_id)

        logger.info("Permission granted", actor_id=actor_id, target_user_id=target_user_id, permission=pid)
        await self._audit(
            AuditEventType.PERMISSION_GRANTED,
            actor_id,
            pid.rpartition(".")[0],
            actor_ip,
            target_user_id=target_user_id,
            permission=pid,
            expires_at=grant.expires_at.isoformat() if grant.expires_at else None,
        )
        return grant

    async def revoke_permission(
        self,
        actor_id: str,
        target_user_id: str,
        permission: str,
        *,
        actor_ip: str | None = None,
    ) -> bool:
        """
        Revoke a direct grant.

        The target's cached permission set is invalidated before this returns,
        so the next decision for the target cannot use the revoked permission.
        """
        pid = normalize_permission_id(permission)
        await self._require_manage_user(actor_id, target_user_id, "revoke_permission", actor_ip)

        removed = await self.grant_store.delete_permission_grant(target_user_id, pid)
        await self._invalidate(target_user_id)

        logger.info(
            "Permission revoked",
            actor_id=actor_id,
            target_user_id=target_user_id,
            permission=pid,
            removed=removed,
        )
        await self._audit(
            AuditEventType.PERMISSION_REVOKED,
            actor_id,
            pid.rpartition(".")[0],
            actor_ip,
            target_user_id=target_user_id,
            permission=pid,
            removed=removed,
        )
        return removed

    # ============================================================
    # POLICIES
    # ============================================================

    async def upsert_policy(
        self,
        actor_id: str,
        policy: ResourcePolicy,
        *,
        actor_ip: str | None = None,
    ) -> ResourcePolicy:
        """
        Create or replace a resource policy.

        When a policy with the same id exists, the actor must also be allowed
        to manage that existing policy.

        Raises:
            ManagementDenied: If the actor may not manage the policy
            InvalidPolicy: If a condition is unknown or malformed
        """
        PolicyEvaluator.validate(policy)

        actor = await self.engine.effective_permissions(actor_id)
        await self._require_manage_policy(actor, policy, "upsert_policy", actor_ip)

        existing = await self.policy_store.get_policy(policy.id)
        if existing is not None:
            await self._require_manage_policy(actor, existing, "upsert_policy", actor_ip)

        saved = await self.policy_store.save_policy(policy)

        logger.info(
            "Policy upserted",
            actor_id=actor_id,
            policy_id=saved.id,
            resource=saved.resource,
            effect=saved.effect.value,
            created=existing is None,
        )
        await self._audit(
            AuditEventType.POLICY_UPSERTED,
            actor_id,
            saved.resource,
            actor_ip,
            resource_id=saved.resource_id,
            policy_id=saved.id,
            effect=saved.effect.value,
            priority=saved.priority,
        )
        return saved

    async def delete_policy(
        self,
        actor_id: str,
        policy_id: str,
        *,
        actor_ip: str | None = None,
    ) -> None:
        """
        Delete a resource policy.

        Raises:
            PolicyNotFound: If no policy has that id
            ManagementDenied: If the actor may not manage the policy
        """
        policy = await self.policy_store.get_policy(policy_id)
        if policy is None:
            raise PolicyNotFound(f"Policy {policy_id} not found")

        actor = await self.engine.effective_permissions(actor_id)
        await self._require_manage_policy(actor, policy, "delete_policy", actor_ip)

        await self.policy_store.delete_policy(policy_id)

        logger.info("Policy deleted", actor_id=actor_id, policy_id=policy_id)
        await self._audit(
            AuditEventType.POLICY_DELETED,
            actor_id,
            policy.resource,
            actor_ip,
            resource_id=policy.resource_id,
            policy_id=policy_id,
        )

    # ============================================================
    # ROLE DEFAULTS
    # ============================================================

    async def set_role_defaults(
        self,
        actor_id: str,
        role: Role | str,
        permission_ids: list[str] | frozenset[str],
        *,
        actor_ip: str | None = None,
    ) -> frozenset[str]:
        """
        Replace the default permissions of a role.

        Affects every holder of the role, so the whole cache is cleared.

        Raises:
            ManagementDenied: If the actor is not SUPER_ADMIN
        """
        role = parse_role(role)
        ids = frozenset(normalize_permission_id(p) for p in permission_ids)

        actor = await self.engine.effective_permissions(actor_id)
        if not actor.is_super_admin:
            await self._deny(actor_id, "set_role_defaults", "Only SUPER_ADMIN may change role defaults", actor_ip)

        await self.grant_store.set_role_defaults(role, ids)
        if self.engine.cache is not None:
            await self.engine.cache.clear()

        logger.info("Role defaults changed", actor_id=actor_id, role=role.value, count=len(ids))
        await self._audit(
            AuditEventType.ROLE_DEFAULTS_CHANGED,
            actor_id,
            "admin",
            actor_ip,
            role=role.value,
            permissions=sorted(ids),
        )
        return ids

    # ============================================================
    # GATES
    # ============================================================

    async def _require_manage_user(
        self,
        actor_id: str,
        target_user_id: str,
        operation: str,
        actor_ip: str | None,
    ) -> None:
        if not await self.engine.can_manage_user(actor_id, target_user_id):
            await self._deny(
                actor_id,
                operation,
                "Actor cannot manage target user",
                actor_ip,
                target_user_id=target_user_id,
            )

    async def _require_manage_policy(
        self,
        actor: EffectivePermissionSet,
        policy: ResourcePolicy,
        operation: str,
        actor_ip: str | None,
    ) -> None:
        if actor.is_super_admin:
            return

        if not actor.has(permission_id(policy.resource, PermissionAction.MANAGE)):
            await self._deny(
                actor.user_id,
                operation,
                f"Actor lacks MANAGE on {policy.resource}",
                actor_ip,
                policy_id=policy.id,
            )

        if not policy.roles:
            await self._deny(
                actor.user_id,
                operation,
                "Policies for any role require SUPER_ADMIN",
                actor_ip,
                policy_id=policy.id,
            )

        for role in policy.roles:
            if not self.hierarchy.can_manage_levels(
                actor.role, actor.level, role, self.hierarchy.level(role)
            ):
                await self._deny(
                    actor.user_id,
                    operation,
                    f"{actor.role.value} cannot manage policies for {role.value}",
                    actor_ip,
                    policy_id=policy.id,
                )

    async def _deny(
        self,
        actor_id: str,
        operation: str,
        detail: str,
        actor_ip: str | None,
        **extra: Any,
    ) -> None:
        """Audit and raise a refused mutation."""
        logger.warning("Management denied", actor_id=actor_id, operation=operation, detail=detail, **extra)
        await self._emit(
            AuditEvent(
                user_id=actor_id,
                resource="admin",
                action=operation,
                verdict="DENY",
                reason=ManagementDenied.reason,
                actor_ip=actor_ip,
                detail=detail,
                policy_id=extra.get("policy_id"),
                event_type=AuditEventType.MANAGEMENT_DENIED,
                extra=extra,
            )
        )
        raise ManagementDenied(detail)

    # ============================================================
    # HELPERS
    # ============================================================

    async def _invalidate(self, user_id: str) -> None:
        if self.engine.cache is not None:
            await self.engine.cache.invalidate(user_id)

    async def _audit(
        self,
        event_type: AuditEventType,
        actor_id: str,
        resource: str,
        actor_ip: str | None,
        resource_id: str | None = None,
        policy_id: str | None = None,
        **extra: Any,
    ) -> None:
        await self._emit(
            AuditEvent(
                user_id=actor_id,
                resource=resource,
                action=event_type.value,
                verdict="ALLOW",
                reason=event_type.value,
                resource_id=resource_id,
                actor_ip=actor_ip,
                policy_id=policy_id,
                event_type=event_type,
                extra=extra,
            )
        )

    async def _emit(self, event: AuditEvent) -> None:
        if self.audit_sink is None:
            return
        try:
            await self.audit_sink.emit(event)
        except Exception as e:
            logger.error("Audit sink failed", event_type=event.event_type.value, error=str(e))
