"""
SQLAlchemy grant and policy stores.

Each call runs in its own session from the injected factory; writes commit
before returning. Database and driver errors surface as StoreUnavailable.

Usage:
    session_factory = create_session_factory(engine)
    grants = SQLAlchemyGrantStore(session_factory)
    policies = SQLAlchemyPolicyStore(session_factory)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

import structlog
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authz.core.auth.models import (
    PermissionGrant,
    PolicyEffect,
    ResourcePolicy,
    RoleAssignment,
)
from authz.core.auth.permissions import DEFAULT_ROLE_PERMISSIONS, normalize_permission_id, parse_action
from authz.core.auth.roles import Role, parse_role
from authz.core.errors import InvalidPolicy, StoreUnavailable
from authz.models.authorization import (
    PermissionGrantRow,
    ResourcePolicyRow,
    RoleAssignmentRow,
    RoleDefaultPermissionRow,
)
from authz.utils.timezone import to_utc_optional

logger = structlog.get_logger(__name__)


class _SessionStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            logger.error("Database error", store=type(self).__name__, error=str(e))
            raise StoreUnavailable(f"Database error: {e}") from e


def _active(column, now: datetime):
    return or_(column.is_(None), column > now)


class SQLAlchemyGrantStore(_SessionStore):
    """Role assignments, direct grants and role defaults in SQL tables."""

    # ============================================================
    # READS
    # ============================================================

    async def list_active_role_assignments(
        self,
        user_id: str,
        now: datetime,
    ) -> list[RoleAssignment]:
        async with self._session() as session:
            result = await session.execute(
                select(RoleAssignmentRow)
                .where(RoleAssignmentRow.user_id == user_id)
                .where(_active(RoleAssignmentRow.expires_at, now))
            )
            rows = result.scalars().all()

        return [
            RoleAssignment(
                user_id=row.user_id,
                role=parse_role(row.role),
                expires_at=to_utc_optional(row.expires_at),
                assigned_by=row.assigned_by,
                assigned_at=to_utc_optional(row.assigned_at),
            )
            for row in rows
        ]

    async def list_active_permission_grants(
        self,
        user_id: str,
        now: datetime,
    ) -> list[PermissionGrant]:
        async with self._session() as session:
            result = await session.execute(
                select(PermissionGrantRow)
                .where(PermissionGrantRow.user_id == user_id)
                .where(_active(PermissionGrantRow.expires_at, now))
            )
            rows = result.scalars().all()

        return [
            PermissionGrant(
                user_id=row.user_id,
                permission_id=normalize_permission_id(row.permission_id),
                expires_at=to_utc_optional(row.expires_at),
                granted_by=row.granted_by,
                granted_at=to_utc_optional(row.granted_at),
            )
            for row in rows
        ]

    async def default_permissions_for_role(self, role: Role) -> frozenset[str]:
        async with self._session() as session:
            result = await session.execute(
                select(RoleDefaultPermissionRow.permission_id)
                .where(RoleDefaultPermissionRow.role == role.value)
            )
            ids = result.scalars().all()
        return frozenset(normalize_permission_id(pid) for pid in ids)

    # ============================================================
    # WRITES
    # ============================================================

    async def save_role_assignment(self, assignment: RoleAssignment) -> RoleAssignment:
        async with self._session() as session:
            result = await session.execute(
                select(RoleAssignmentRow)
                .where(RoleAssignmentRow.user_id == assignment.user_id)
                .where(RoleAssignmentRow.role == assignment.role.value)
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = RoleAssignmentRow(user_id=assignment.user_id, role=assignment.role.value)
                session.add(row)
            row.expires_at = assignment.expires_at
            row.assigned_by = assignment.assigned_by
            if assignment.assigned_at is not None:
                row.assigned_at = assignment.assigned_at
            await session.commit()
        return assignment

    async def delete_role_assignment(self, user_id: str, role: Role) -> bool:
        async with self._session() as session:
            result = await session.execute(
                delete(RoleAssignmentRow)
                .where(RoleAssignmentRow.user_id == user_id)
                .where(RoleAssignmentRow.role == role.value)
            )
            await session.commit()
        return result.rowcount > 0

    async def save_permission_grant(self, grant: PermissionGrant) -> PermissionGrant:
        pid = normalize_permission_id(grant.permission_id)
        async with self._session() as session:
            result = await session.execute(
                select(PermissionGrantRow)
                .where(PermissionGrantRow.user_id == grant.user_id)
                .where(PermissionGrantRow.permission_id == pid)
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = PermissionGrantRow(user_id=grant.user_id, permission_id=pid)
                session.add(row)
            row.expires_at = grant.expires_at
            row.granted_by = grant.granted_by
            if grant.granted_at is not None:
                row.granted_at = grant.granted_at
            await session.commit()
        return grant

    async def delete_permission_grant(self, user_id: str, permission_id: str) -> bool:
        pid = normalize_permission_id(permission_id)
        async with self._session() as session:
            result = await session.execute(
                delete(PermissionGrantRow)
                .where(PermissionGrantRow.user_id == user_id)
                .where(PermissionGrantRow.permission_id == pid)
            )
            await session.commit()
        return result.rowcount > 0

    async def set_role_defaults(self, role: Role, permission_ids: frozenset[str]) -> None:
        async with self._session() as session:
            await session.execute(
                delete(RoleDefaultPermissionRow).where(RoleDefaultPermissionRow.role == role.value)
            )
            session.add_all(
                RoleDefaultPermissionRow(role=role.value, permission_id=normalize_permission_id(pid))
                for pid in sorted(permission_ids)
            )
            await session.commit()

    async def seed_role_defaults(
        self,
        defaults: dict[Role, frozenset[str]] = DEFAULT_ROLE_PERMISSIONS,
    ) -> int:
        """
        Load the static default table into an empty role_default_permissions.

        Does nothing once any role default exists, so edits made through
        set_role_defaults survive restarts.

        Returns:
            Number of rows inserted
        """
        async with self._session() as session:
            result = await session.execute(select(RoleDefaultPermissionRow).limit(1))
            if result.scalar_one_or_none() is not None:
                return 0

            rows = [
                RoleDefaultPermissionRow(role=role.value, permission_id=pid)
                for role, ids in defaults.items()
                for pid in sorted(ids)
            ]
            session.add_all(rows)
            await session.commit()

        logger.info("Seeded role default permissions", count=len(rows))
        return len(rows)

    async def purge_expired(self, now: datetime) -> int:
        async with self._session() as session:
            assignments = await session.execute(
                delete(RoleAssignmentRow)
                .where(RoleAssignmentRow.expires_at.is_not(None))
                .where(RoleAssignmentRow.expires_at <= now)
            )
            grants = await session.execute(
                delete(PermissionGrantRow)
                .where(PermissionGrantRow.expires_at.is_not(None))
                .where(PermissionGrantRow.expires_at <= now)
            )
            await session.commit()
        return assignments.rowcount + grants.rowcount


class SQLAlchemyPolicyStore(_SessionStore):
    """Resource policies in the resource_policies table."""

    @staticmethod
    def _to_policy(row: ResourcePolicyRow) -> ResourcePolicy:
        try:
            effect = PolicyEffect(row.effect)
        except ValueError:
            raise InvalidPolicy(f"Undefined effect: {row.effect!r}", policy_id=row.id) from None

        return ResourcePolicy(
            id=row.id,
            resource=row.resource,
            resource_id=row.resource_id,
            priority=row.priority,
            effect=effect,
            roles=frozenset(parse_role(r) for r in row.roles or []),
            actions=frozenset(parse_action(a) for a in row.actions or []),
            conditions=dict(row.conditions or {}),
            description=row.description,
        )

    async def list_policies(
        self,
        resource: str,
        resource_id: str | None = None,
    ) -> list[ResourcePolicy]:
        scope = ResourcePolicyRow.resource_id.is_(None)
        if resource_id is not None:
            scope = or_(scope, ResourcePolicyRow.resource_id == resource_id)

        async with self._session() as session:
            result = await session.execute(
                select(ResourcePolicyRow)
                .where(ResourcePolicyRow.resource == resource)
                .where(scope)
            )
            rows = result.scalars().all()

        policies = []
        for row in rows:
            try:
                policies.append(self._to_policy(row))
            except InvalidPolicy as e:
                logger.warning("Skipping invalid policy", policy_id=row.id, error=e.detail)
        return policies

    async def get_policy(self, policy_id: str) -> ResourcePolicy | None:
        async with self._session() as session:
            row = await session.get(ResourcePolicyRow, policy_id)
        return self._to_policy(row) if row is not None else None

    async def save_policy(self, policy: ResourcePolicy) -> ResourcePolicy:
        async with self._session() as session:
            row = await session.get(ResourcePolicyRow, policy.id)
            if row is None:
                row = ResourcePolicyRow(id=policy.id)
                session.add(row)
            row.resource = policy.resource
            row.resource_id = policy.resource_id
            row.priority = policy.priority
            row.effect = policy.effect.value
            row.roles = sorted(r.value for r in policy.roles)
            row.actions = sorted(a.value for a in policy.actions)
            row.conditions = dict(policy.conditions)
            row.description = policy.description
            await session.commit()
        return policy

    async def delete_policy(self, policy_id: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                delete(ResourcePolicyRow).where(ResourcePolicyRow.id == policy_id)
            )
            await session.commit()
        return result.rowcount > 0
