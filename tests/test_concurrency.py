"""
Concurrent decisions racing a revoke.
"""

import asyncio
import random

import pytest

from authz.core.auth import AuthorizationAdminService, DecisionEngine, Role
from authz.implementations.cache import MemoryDecisionCache
from authz.implementations.stores import MemoryPolicyStore

from tests.conftest import GrantFactory, SlowGrantStore


@pytest.mark.asyncio
async def test_no_decision_after_revoke_uses_revoked_permission():
    """Every authorize started after revoke_permission returned is denied."""
    store = SlowGrantStore(delay=0.001)
    engine = DecisionEngine(store, MemoryPolicyStore(), cache=MemoryDecisionCache(default_ttl=300))
    admin = AuthorizationAdminService(engine, store, engine.evaluator.policy_store)
    grants = GrantFactory(store)

    await grants.role("admin", Role.ADMIN)
    await grants.role("u1", Role.CLIENT)
    await grants.permission("u1", "events.delete")
    assert (await engine.authorize("u1", "events", "DELETE")).allowed

    revoked = asyncio.Event()
    late_results: list[bool] = []

    async def decide(after_revoke: bool):
        if after_revoke:
            await revoked.wait()
        else:
            await asyncio.sleep(random.uniform(0, 0.02))
        started_after_revoke = revoked.is_set()
        verdict = await engine.authorize("u1", "events", "DELETE")
        if started_after_revoke:
            late_results.append(verdict.allowed)

    async def revoke():
        await asyncio.sleep(0.005)
        await admin.revoke_permission("admin", "u1", "events.delete")
        revoked.set()

    await asyncio.gather(revoke(), *(decide(after_revoke=i % 10 == 0) for i in range(100)))

    assert len(late_results) >= 10
    assert not any(late_results)
    assert not (await engine.authorize("u1", "events", "DELETE")).allowed


@pytest.mark.asyncio
async def test_concurrent_decisions_for_many_users():
    store = SlowGrantStore(delay=0.0005)
    engine = DecisionEngine(store, MemoryPolicyStore(), cache=MemoryDecisionCache(shards=4))
    grants = GrantFactory(store)
    roles = [Role.CLIENT, Role.EDITOR, Role.ADMIN]
    for i in range(30):
        await grants.role(f"u{i}", roles[i % 3])

    verdicts = await asyncio.gather(
        *(engine.authorize(f"u{i % 30}", "events", "UPDATE") for i in range(300))
    )

    for i, verdict in enumerate(verdicts):
        assert verdict.allowed is (roles[(i % 30) % 3] is not Role.CLIENT)
