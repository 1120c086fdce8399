"""
Administration service tests: gates, cache invalidation and auditing.
"""

import pytest

from authz.core.auth import (
    AuthorizationAdminService,
    DecisionEngine,
    PermissionAction,
    PolicyEffect,
    ResourcePolicy,
    Role,
    RoleHierarchy,
)
from authz.core.errors import InvalidPolicy, ManagementDenied, PolicyNotFound, UnknownPermission, UnknownRole
from authz.core.interfaces import AuditEventType
from authz.implementations.cache import MemoryDecisionCache

from tests.conftest import GrantFactory, RecordingAuditSink


def events_policy(id="p1", roles=frozenset({Role.CLIENT}), resource="events", **kwargs) -> ResourcePolicy:
    return ResourcePolicy(
        id=id,
        resource=resource,
        effect=kwargs.pop("effect", PolicyEffect.ALLOW),
        actions=frozenset({PermissionAction.DELETE}),
        roles=roles,
        **kwargs,
    )


# ============ Role assignments ============


@pytest.mark.asyncio
async def test_assign_role(admin, engine, staff, audit_sink: RecordingAuditSink):
    assignment = await admin.assign_role(staff["ADMIN"], "u1", Role.EDITOR, actor_ip="10.0.0.1")

    assert assignment.role is Role.EDITOR
    assert assignment.assigned_by == staff["ADMIN"]
    assert (await engine.effective_permissions("u1")).role is Role.EDITOR

    event = audit_sink.events[-1]
    assert event.event_type is AuditEventType.ROLE_ASSIGNED
    assert event.user_id == staff["ADMIN"]
    assert event.actor_ip == "10.0.0.1"
    assert event.extra["target_user_id"] == "u1"


@pytest.mark.asyncio
async def test_assign_role_accepts_names(admin, staff):
    assignment = await admin.assign_role(staff["ADMIN"], "u1", "viewer")
    assert assignment.role is Role.VIEWER

    with pytest.raises(UnknownRole):
        await admin.assign_role(staff["ADMIN"], "u1", "OWNER")


@pytest.mark.asyncio
async def test_cannot_assign_role_at_or_above_own_level(admin, staff, audit_sink: RecordingAuditSink):
    with pytest.raises(ManagementDenied):
        await admin.assign_role(staff["ADMIN"], "u1", Role.ADMIN)

    with pytest.raises(ManagementDenied):
        await admin.assign_role(staff["ADMIN"], "u1", Role.SUPER_ADMIN)

    event = audit_sink.events[-1]
    assert event.event_type is AuditEventType.MANAGEMENT_DENIED
    assert event.verdict == "DENY"
    assert event.action == "assign_role"


@pytest.mark.asyncio
async def test_cannot_manage_peer_or_superior(admin, staff):
    with pytest.raises(ManagementDenied):
        await admin.assign_role(staff["EDITOR"], staff["MODERATOR"], Role.CLIENT)

    with pytest.raises(ManagementDenied):
        await admin.revoke_role(staff["ADMIN"], staff["SUPER_ADMIN"], Role.SUPER_ADMIN)


@pytest.mark.asyncio
async def test_user_without_roles_cannot_manage_anyone(admin):
    with pytest.raises(ManagementDenied):
        await admin.assign_role("nobody", "somebody", Role.GUEST)


@pytest.mark.asyncio
async def test_super_admin_cannot_create_peers_by_default(admin, staff):
    assignment = await admin.assign_role(staff["SUPER_ADMIN"], "u1", Role.ADMIN)
    assert assignment.role is Role.ADMIN

    with pytest.raises(ManagementDenied):
        await admin.assign_role(staff["SUPER_ADMIN"], "u2", Role.SUPER_ADMIN)


@pytest.mark.asyncio
async def test_super_admin_peers_flag(grant_store, policy_store, grants: GrantFactory):
    engine = DecisionEngine(
        grant_store,
        policy_store,
        hierarchy=RoleHierarchy(allow_super_admin_peers=True),
    )
    admin = AuthorizationAdminService(engine, grant_store, policy_store)
    await grants.role("root", Role.SUPER_ADMIN)

    assignment = await admin.assign_role("root", "u2", Role.SUPER_ADMIN)

    assert assignment.role is Role.SUPER_ADMIN


@pytest.mark.asyncio
async def test_revoke_role_invalidates_cache(admin, engine, staff, grants: GrantFactory, cache):
    await grants.role("u1", Role.EDITOR)
    assert (await engine.authorize("u1", "news", "UPDATE")).allowed

    removed = await admin.revoke_role(staff["ADMIN"], "u1", Role.EDITOR)

    assert removed
    assert await cache.get("u1") is None
    assert not (await engine.authorize("u1", "news", "UPDATE")).allowed


@pytest.mark.asyncio
async def test_revoke_missing_role(admin, staff):
    assert not await admin.revoke_role(staff["ADMIN"], "u1", Role.EDITOR)


@pytest.mark.asyncio
async def test_expiring_assignment(admin, engine, staff):
    await admin.assign_role(staff["ADMIN"], "u1", Role.EDITOR, expires_at=GrantFactory.past())
    assert (await engine.effective_permissions("u1")).implicit


# ============ Direct grants ============


@pytest.mark.asyncio
async def test_grant_permission(admin, engine, staff, audit_sink: RecordingAuditSink):
    grant = await admin.grant_permission(staff["ADMIN"], "u1", "events.DELETE")

    assert grant.permission_id == "events.delete"
    assert (await engine.authorize("u1", "events", "DELETE")).allowed
    assert audit_sink.events[-1].event_type is AuditEventType.PERMISSION_GRANTED
    assert audit_sink.events[-1].resource == "events"


@pytest.mark.asyncio
async def test_cannot_grant_permission_actor_lacks(admin, staff):
    # USER_MANAGER outranks CLIENT but does not hold events.delete
    with pytest.raises(ManagementDenied):
        await admin.grant_permission(staff["USER_MANAGER"], staff["CLIENT"], "events.delete")


@pytest.mark.asyncio
async def test_super_admin_grants_anything(admin, staff):
    grant = await admin.grant_permission(staff["SUPER_ADMIN"], "u1", "admin.manage")
    assert grant.permission_id == "admin.manage"


@pytest.mark.asyncio
async def test_grant_unknown_permission(admin, staff):
    with pytest.raises(UnknownPermission):
        await admin.grant_permission(staff["SUPER_ADMIN"], "u1", "events.approve")


@pytest.mark.asyncio
async def test_revoke_permission_invalidates_cache(admin, engine, staff, grants: GrantFactory):
    await grants.permission("u1", "events.delete")
    assert (await engine.authorize("u1", "events", "DELETE")).allowed

    assert await admin.revoke_permission(staff["ADMIN"], "u1", "events.delete")

    assert not (await engine.authorize("u1", "events", "DELETE")).allowed


# ============ Policies ============


@pytest.mark.asyncio
async def test_admin_upserts_policy_for_lower_roles(admin, policy_store, staff, audit_sink):
    saved = await admin.upsert_policy(staff["ADMIN"], events_policy())

    assert await policy_store.get_policy(saved.id) == saved
    assert audit_sink.events[-1].event_type is AuditEventType.POLICY_UPSERTED
    assert audit_sink.events[-1].policy_id == "p1"


@pytest.mark.asyncio
async def test_policy_gate_requires_manage_on_resource(admin, staff):
    # EVENT_MANAGER holds events.manage but not news.manage
    await admin.upsert_policy(staff["EVENT_MANAGER"], events_policy())

    with pytest.raises(ManagementDenied):
        await admin.upsert_policy(staff["EVENT_MANAGER"], events_policy(id="p2", resource="news"))


@pytest.mark.asyncio
async def test_policy_gate_requires_outranking_named_roles(admin, staff):
    with pytest.raises(ManagementDenied):
        await admin.upsert_policy(staff["EVENT_MANAGER"], events_policy(roles=frozenset({Role.ADMIN})))


@pytest.mark.asyncio
async def test_policy_for_any_role_is_super_admin_only(admin, staff):
    with pytest.raises(ManagementDenied):
        await admin.upsert_policy(staff["ADMIN"], events_policy(roles=frozenset()))

    saved = await admin.upsert_policy(staff["SUPER_ADMIN"], events_policy(roles=frozenset()))
    assert saved.roles == frozenset()


@pytest.mark.asyncio
async def test_cannot_replace_policy_outside_own_authority(admin, staff):
    await admin.upsert_policy(staff["SUPER_ADMIN"], events_policy(roles=frozenset({Role.MODERATOR})))

    # The replacement alone would pass; the existing policy does not
    with pytest.raises(ManagementDenied):
        await admin.upsert_policy(staff["EVENT_MANAGER"], events_policy(roles=frozenset({Role.CLIENT})))


@pytest.mark.asyncio
async def test_invalid_policy_rejected(admin, policy_store, staff):
    bad = events_policy(conditions={"ip_range": {"cidrs": ["300.0.0.0/8"]}})

    with pytest.raises(InvalidPolicy):
        await admin.upsert_policy(staff["SUPER_ADMIN"], bad)

    assert await policy_store.get_policy("p1") is None


@pytest.mark.asyncio
async def test_delete_policy(admin, policy_store, staff, audit_sink):
    await admin.upsert_policy(staff["ADMIN"], events_policy())

    await admin.delete_policy(staff["ADMIN"], "p1")

    assert await policy_store.get_policy("p1") is None
    assert audit_sink.events[-1].event_type is AuditEventType.POLICY_DELETED


@pytest.mark.asyncio
async def test_delete_policy_gates(admin, staff):
    await admin.upsert_policy(staff["ADMIN"], events_policy())

    with pytest.raises(ManagementDenied):
        await admin.delete_policy(staff["CLIENT"], "p1")

    with pytest.raises(PolicyNotFound):
        await admin.delete_policy(staff["ADMIN"], "missing")


@pytest.mark.asyncio
async def test_policy_change_is_visible_immediately(admin, engine, staff):
    assert not (await engine.authorize(staff["CLIENT"], "events", "DELETE", "event-1")).allowed

    await admin.upsert_policy(staff["ADMIN"], events_policy())

    verdict = await engine.authorize(staff["CLIENT"], "events", "DELETE", "event-1")
    assert verdict.reason == "policy allow"


# ============ Role defaults ============


@pytest.mark.asyncio
async def test_set_role_defaults(admin, engine, staff, audit_sink):
    assert not (await engine.authorize(staff["VIEWER"], "forum", "CREATE")).allowed

    ids = await admin.set_role_defaults(
        staff["SUPER_ADMIN"], Role.VIEWER, ["events.read", "forum.CREATE"]
    )

    assert ids == {"events.read", "forum.create"}
    assert audit_sink.events[-1].event_type is AuditEventType.ROLE_DEFAULTS_CHANGED
    # Whole cache cleared: every holder sees the change
    assert (await engine.authorize(staff["VIEWER"], "forum", "CREATE")).allowed
    assert not (await engine.authorize(staff["VIEWER"], "news", "READ")).allowed


@pytest.mark.asyncio
async def test_set_role_defaults_is_super_admin_only(admin, staff):
    with pytest.raises(ManagementDenied):
        await admin.set_role_defaults(staff["ADMIN"], Role.CLIENT, ["events.read"])


@pytest.mark.asyncio
async def test_set_role_defaults_clears_cache(admin, staff, engine):
    cache = engine.cache
    assert isinstance(cache, MemoryDecisionCache)
    await engine.effective_permissions(staff["CLIENT"])
    assert len(cache) > 0

    await admin.set_role_defaults(staff["SUPER_ADMIN"], Role.CLIENT, [])

    assert await cache.get(staff["CLIENT"]) is None


@pytest.mark.asyncio
async def test_audit_failure_does_not_block_mutation(engine, grant_store, policy_store, grants):
    from tests.conftest import FailingAuditSink

    admin = AuthorizationAdminService(engine, grant_store, policy_store, audit_sink=FailingAuditSink())
    await grants.role("admin", Role.ADMIN)

    assignment = await admin.assign_role("admin", "u1", Role.CLIENT)

    assert assignment.role is Role.CLIENT
