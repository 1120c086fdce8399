"""
SQLAlchemy store tests (async SQLite).
"""

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from authz.core.auth import (
    DEFAULT_ROLE_PERMISSIONS,
    DecisionEngine,
    PermissionAction,
    PermissionGrant,
    PolicyEffect,
    ResourcePolicy,
    Role,
    RoleAssignment,
)
from authz.core.errors import StoreUnavailable
from authz.core.interfaces import AuditEvent
from authz.implementations.audit import DatabaseAuditSink
from authz.implementations.stores import SQLAlchemyGrantStore, SQLAlchemyPolicyStore
from authz.models import AuthorizationAuditLog, ResourcePolicyRow
from authz.utils.timezone import utc_now

from tests.conftest import GrantFactory


@pytest_asyncio.fixture
async def sql_grants(session_factory) -> SQLAlchemyGrantStore:
    store = SQLAlchemyGrantStore(session_factory)
    await store.seed_role_defaults()
    return store


@pytest.fixture
def sql_policies(session_factory) -> SQLAlchemyPolicyStore:
    return SQLAlchemyPolicyStore(session_factory)


# ============ Grant store ============


@pytest.mark.asyncio
async def test_role_assignments_roundtrip(sql_grants: SQLAlchemyGrantStore):
    expires = GrantFactory.future()
    await sql_grants.save_role_assignment(
        RoleAssignment(user_id="u1", role=Role.EDITOR, expires_at=expires, assigned_by="admin")
    )
    await sql_grants.save_role_assignment(RoleAssignment(user_id="u1", role=Role.CLIENT))
    await sql_grants.save_role_assignment(RoleAssignment(user_id="u2", role=Role.ADMIN))

    assignments = await sql_grants.list_active_role_assignments("u1", utc_now())

    by_role = {a.role: a for a in assignments}
    assert set(by_role) == {Role.EDITOR, Role.CLIENT}
    assert by_role[Role.EDITOR].assigned_by == "admin"
    assert by_role[Role.EDITOR].expires_at == expires
    assert by_role[Role.EDITOR].expires_at.tzinfo is not None


@pytest.mark.asyncio
async def test_expired_rows_are_filtered(sql_grants: SQLAlchemyGrantStore):
    await sql_grants.save_role_assignment(
        RoleAssignment(user_id="u1", role=Role.ADMIN, expires_at=GrantFactory.past())
    )
    await sql_grants.save_permission_grant(
        PermissionGrant(user_id="u1", permission_id="events.delete", expires_at=GrantFactory.past())
    )

    now = utc_now()
    assert await sql_grants.list_active_role_assignments("u1", now) == []
    assert await sql_grants.list_active_permission_grants("u1", now) == []


@pytest.mark.asyncio
async def test_save_replaces_existing_assignment(sql_grants: SQLAlchemyGrantStore):
    await sql_grants.save_role_assignment(
        RoleAssignment(user_id="u1", role=Role.EDITOR, expires_at=GrantFactory.past())
    )
    await sql_grants.save_role_assignment(RoleAssignment(user_id="u1", role=Role.EDITOR))

    assignments = await sql_grants.list_active_role_assignments("u1", utc_now())

    assert len(assignments) == 1
    assert assignments[0].expires_at is None


@pytest.mark.asyncio
async def test_delete_role_assignment(sql_grants: SQLAlchemyGrantStore):
    await sql_grants.save_role_assignment(RoleAssignment(user_id="u1", role=Role.EDITOR))

    assert await sql_grants.delete_role_assignment("u1", Role.EDITOR)
    assert not await sql_grants.delete_role_assignment("u1", Role.EDITOR)
    assert await sql_grants.list_active_role_assignments("u1", utc_now()) == []


@pytest.mark.asyncio
async def test_permission_grants(sql_grants: SQLAlchemyGrantStore):
    await sql_grants.save_permission_grant(PermissionGrant(user_id="u1", permission_id="events.DELETE"))

    grants = await sql_grants.list_active_permission_grants("u1", utc_now())
    assert [g.permission_id for g in grants] == ["events.delete"]

    assert await sql_grants.delete_permission_grant("u1", "events.delete")
    assert not await sql_grants.delete_permission_grant("u1", "events.delete")


@pytest.mark.asyncio
async def test_seeded_role_defaults(sql_grants: SQLAlchemyGrantStore):
    for role, ids in DEFAULT_ROLE_PERMISSIONS.items():
        assert await sql_grants.default_permissions_for_role(role) == ids

    # Seeding again is a no-op
    assert await sql_grants.seed_role_defaults() == 0


@pytest.mark.asyncio
async def test_set_role_defaults_survives_reseed(sql_grants: SQLAlchemyGrantStore):
    await sql_grants.set_role_defaults(Role.GUEST, frozenset({"news.read"}))
    await sql_grants.seed_role_defaults()

    assert await sql_grants.default_permissions_for_role(Role.GUEST) == {"news.read"}


@pytest.mark.asyncio
async def test_purge_expired(sql_grants: SQLAlchemyGrantStore):
    await sql_grants.save_role_assignment(
        RoleAssignment(user_id="u1", role=Role.ADMIN, expires_at=GrantFactory.past())
    )
    await sql_grants.save_role_assignment(
        RoleAssignment(user_id="u1", role=Role.CLIENT, expires_at=GrantFactory.future())
    )
    await sql_grants.save_permission_grant(
        PermissionGrant(user_id="u1", permission_id="events.delete", expires_at=GrantFactory.past())
    )

    assert await sql_grants.purge_expired(utc_now()) == 2
    assert len(await sql_grants.list_active_role_assignments("u1", utc_now())) == 1


@pytest.mark.asyncio
async def test_unreachable_database_raises_store_unavailable():
    engine = create_async_engine("sqlite+aiosqlite:////nonexistent-dir/authz.db")
    store = SQLAlchemyGrantStore(async_sessionmaker(engine, class_=AsyncSession))

    with pytest.raises(StoreUnavailable):
        await store.list_active_role_assignments("u1", utc_now())

    await engine.dispose()


# ============ Policy store ============


def db_policy(id: str, resource_id: str | None = None) -> ResourcePolicy:
    return ResourcePolicy(
        id=id,
        resource="events",
        resource_id=resource_id,
        effect=PolicyEffect.DENY,
        priority=10,
        roles=frozenset({Role.CLIENT, Role.VIEWER}),
        actions=frozenset({PermissionAction.DELETE, PermissionAction.UPDATE}),
        conditions={"ip_range": {"cidrs": ["10.0.0.0/8"]}},
        description="Lock",
    )


@pytest.mark.asyncio
async def test_policy_roundtrip(sql_policies: SQLAlchemyPolicyStore):
    policy = db_policy("p1", "event-123")
    await sql_policies.save_policy(policy)

    assert await sql_policies.get_policy("p1") == policy
    assert await sql_policies.get_policy("missing") is None


@pytest.mark.asyncio
async def test_list_policies_scope(sql_policies: SQLAlchemyPolicyStore):
    await sql_policies.save_policy(db_policy("global"))
    await sql_policies.save_policy(db_policy("mine", "event-123"))
    await sql_policies.save_policy(db_policy("other", "event-999"))

    for_type = {p.id for p in await sql_policies.list_policies("events")}
    for_instance = {p.id for p in await sql_policies.list_policies("events", "event-123")}

    assert for_type == {"global"}
    assert for_instance == {"global", "mine"}
    assert await sql_policies.list_policies("news") == []


@pytest.mark.asyncio
async def test_save_policy_replaces(sql_policies: SQLAlchemyPolicyStore):
    await sql_policies.save_policy(db_policy("p1"))
    replacement = ResourcePolicy(
        id="p1",
        resource="events",
        effect=PolicyEffect.ALLOW,
        actions=frozenset({PermissionAction.READ}),
    )

    await sql_policies.save_policy(replacement)

    assert await sql_policies.get_policy("p1") == replacement


@pytest.mark.asyncio
async def test_delete_policy(sql_policies: SQLAlchemyPolicyStore):
    await sql_policies.save_policy(db_policy("p1"))

    assert await sql_policies.delete_policy("p1")
    assert not await sql_policies.delete_policy("p1")


@pytest.mark.asyncio
async def test_corrupt_policy_row_is_skipped(sql_policies: SQLAlchemyPolicyStore, session_factory):
    await sql_policies.save_policy(db_policy("good"))
    async with session_factory() as session:
        session.add(
            ResourcePolicyRow(id="bad", resource="events", effect="MAYBE", roles=[], actions=["DELETE"], conditions={})
        )
        await session.commit()

    assert [p.id for p in await sql_policies.list_policies("events")] == ["good"]


# ============ End to end ============


@pytest.mark.asyncio
async def test_engine_over_database(sql_grants, sql_policies, session_factory):
    audit_sink = DatabaseAuditSink(session_factory)
    engine = DecisionEngine(sql_grants, sql_policies, audit_sink=audit_sink)
    await sql_grants.save_role_assignment(RoleAssignment(user_id="client", role=Role.CLIENT))
    await sql_policies.save_policy(
        ResourcePolicy(
            id="lock",
            resource="events",
            resource_id="event-123",
            effect=PolicyEffect.DENY,
            priority=10,
            actions=frozenset({PermissionAction.READ}),
        )
    )

    assert (await engine.authorize("client", "events", "READ", "event-1")).allowed
    verdict = await engine.authorize("client", "events", "READ", "event-123")

    assert verdict.reason == "policy deny"
    async with session_factory() as session:
        rows = (await session.execute(select(AuthorizationAuditLog))).scalars().all()
    assert len(rows) == 1
    assert rows[0].verdict == "DENY"
    assert rows[0].policy_id == "lock"
    assert rows[0].resource_id == "event-123"


@pytest.mark.asyncio
async def test_database_audit_sink(session_factory):
    sink = DatabaseAuditSink(session_factory)

    await sink.emit(
        AuditEvent(
            user_id="u1",
            resource="events",
            action="DELETE",
            verdict="DENY",
            reason="no permission",
            actor_ip="10.0.0.1",
            extra={"target_user_id": "u2"},
        )
    )

    async with session_factory() as session:
        count = await session.scalar(select(func.count()).select_from(AuthorizationAuditLog))
        row = (await session.execute(select(AuthorizationAuditLog))).scalar_one()
    assert count == 1
    assert row.event_type == "authorization.decision"
    assert row.extra_data == {"target_user_id": "u2"}
