"""
Pytest fixtures for testing.

Provides:
- Isolated engine/admin service per test (in-memory stores, own cache)
- Async SQLite database for the SQLAlchemy adapters
- Redis decision cache under a per-test key prefix (skipped without a server)
- Test client with a header-based caller identity
- Fakes for failing/slow stores and a recording audit sink
"""

import asyncio
import os
from datetime import datetime, timedelta
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
import redis.asyncio as redis
from fastapi import Request
from httpx import ASGITransport, AsyncClient
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from authz.api.dependencies import get_current_user_id
from authz.core.auth import (
    AuthorizationAdminService,
    DecisionEngine,
    PermissionGrant,
    Role,
    RoleAssignment,
)
from authz.core.config import Settings
from authz.core.container import Container
from authz.core.interfaces import AuditEvent
from authz.implementations.cache import MemoryDecisionCache, RedisDecisionCache
from authz.implementations.stores import MemoryGrantStore, MemoryPolicyStore
from authz.main import create_app
from authz.models.base import Base
from authz.models.database import init_db
from authz.utils.timezone import utc_now


# Test database URL (SQLite in-memory for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Redis for the shared decision cache; tests using it skip when unreachable
TEST_REDIS_URL = os.environ.get("AUTHZ_TEST_REDIS_URL", "redis://localhost:6379/15")


# ============ Fakes ============


class RecordingAuditSink:
    """Audit sink that keeps events in memory."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def emit(self, event: AuditEvent) -> None:
        self.events.append(event)

    def for_user(self, user_id: str) -> list[AuditEvent]:
        return [e for e in self.events if e.user_id == user_id]

    def clear(self) -> None:
        self.events.clear()


class FailingAuditSink:
    """Audit sink whose backend is down."""

    async def emit(self, event: AuditEvent) -> None:
        raise ConnectionError("audit backend down")


class FailingGrantStore(MemoryGrantStore):
    """Grant store that cannot reach its database."""

    async def list_active_role_assignments(self, user_id, now):
        raise ConnectionError("connection refused")


class SlowGrantStore(MemoryGrantStore):
    """Grant store that yields to the event loop on every read."""

    def __init__(self, delay: float = 0.001, **kwargs):
        super().__init__(**kwargs)
        self.delay = delay

    async def list_active_role_assignments(self, user_id, now):
        await asyncio.sleep(self.delay)
        return await super().list_active_role_assignments(user_id, now)

    async def list_active_permission_grants(self, user_id, now):
        await asyncio.sleep(self.delay)
        return await super().list_active_permission_grants(user_id, now)


class UnfilteredGrantStore(MemoryGrantStore):
    """Grant store that returns expired rows too."""

    async def list_active_role_assignments(self, user_id, now):
        return [a for (uid, _), a in self._assignments.items() if uid == user_id]

    async def list_active_permission_grants(self, user_id, now):
        return [g for (uid, _), g in self._grants.items() if uid == user_id]


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============ Factory Fixtures ============


class GrantFactory:
    """Factory for seeding role assignments and direct grants."""

    def __init__(self, store: MemoryGrantStore):
        self.store = store

    async def role(
        self,
        user_id: str,
        role: Role,
        expires_at: datetime | None = None,
    ) -> RoleAssignment:
        """Assign a role directly in the store (no gates)."""
        return await self.store.save_role_assignment(
            RoleAssignment(user_id=user_id, role=role, expires_at=expires_at, assigned_at=utc_now())
        )

    async def permission(
        self,
        user_id: str,
        permission_id: str,
        expires_at: datetime | None = None,
    ) -> PermissionGrant:
        """Grant a permission directly in the store (no gates)."""
        return await self.store.save_permission_grant(
            PermissionGrant(user_id=user_id, permission_id=permission_id, expires_at=expires_at)
        )

    @staticmethod
    def past(hours: int = 1) -> datetime:
        return utc_now() - timedelta(hours=hours)

    @staticmethod
    def future(hours: int = 1) -> datetime:
        return utc_now() + timedelta(hours=hours)


# ============ Engine Fixtures ============


@pytest.fixture
def grant_store() -> MemoryGrantStore:
    return MemoryGrantStore()


@pytest.fixture
def policy_store() -> MemoryPolicyStore:
    return MemoryPolicyStore()


@pytest.fixture
def cache() -> MemoryDecisionCache:
    return MemoryDecisionCache(default_ttl=300, shards=4)


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def engine(grant_store, policy_store, cache, audit_sink) -> DecisionEngine:
    """Decision engine with its own cache."""
    return DecisionEngine(
        grant_store,
        policy_store,
        cache=cache,
        audit_sink=audit_sink,
    )


@pytest.fixture
def admin(engine, grant_store, policy_store, audit_sink) -> AuthorizationAdminService:
    return AuthorizationAdminService(engine, grant_store, policy_store, audit_sink=audit_sink)


@pytest.fixture
def grants(grant_store) -> GrantFactory:
    return GrantFactory(grant_store)


@pytest_asyncio.fixture
async def staff(grants: GrantFactory) -> dict[str, str]:
    """
    One user per role, plus a user without any assignment.

    Keys are role names (and "nobody"); values are user ids.
    """
    users = {}
    for role in Role:
        user_id = f"user-{role.value.lower()}"
        await grants.role(user_id, role)
        users[role.value] = user_id
    users["nobody"] = "user-nobody"
    return users


# ============ Database Fixtures ============


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    await init_db(engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ============ Redis Fixtures ============


@pytest_asyncio.fixture(scope="function")
async def redis_cache() -> AsyncGenerator[RedisDecisionCache, None]:
    """RedisDecisionCache on a live server; keys are removed afterwards."""
    client = redis.from_url(TEST_REDIS_URL, encoding="utf-8", decode_responses=True)
    try:
        await client.ping()
    except RedisError:
        await client.aclose()
        pytest.skip(f"Redis not reachable at {TEST_REDIS_URL}")

    prefix = f"authz-test:{uuid4().hex}:"
    cache = RedisDecisionCache(prefix=prefix, default_ttl=300, client=client)

    yield cache

    keys = [key async for key in client.scan_iter(match=f"{prefix}*")]
    if keys:
        await client.delete(*keys)
    await client.aclose()


# ============ API Fixtures ============


async def header_user_id(request: Request) -> str:
    """Test identity: the caller id travels in X-User-Id."""
    from fastapi import HTTPException

    user_id = request.headers.get("X-User-Id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id


@pytest.fixture
def container(grant_store, policy_store, cache, audit_sink) -> Container:
    return Container(
        grant_store=grant_store,
        policy_store=policy_store,
        cache=cache,
        audit_sink=audit_sink,
    )


@pytest_asyncio.fixture(scope="function")
async def client(container: Container) -> AsyncGenerator[AsyncClient, None]:
    """Test client bound to the per-test container."""
    app = create_app(settings=Settings(environment="testing"), container=container)
    app.dependency_overrides[get_current_user_id] = header_user_id

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


def as_user(user_id: str) -> dict[str, str]:
    """Headers identifying the caller."""
    return {"X-User-Id": user_id}
