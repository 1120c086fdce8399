"""
Dependency injection container.
Builds the decision engine and its backends from settings.

Every container owns its own cache, so tests and separate apps never
share decision state.

Example:
```python
from authz.core.container import Container

container = Container.from_settings(get_settings())
await container.initialize()

verdict = await container.engine.authorize(user_id, "events", "READ")
```
"""

from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from authz.core.auth import AuthorizationAdminService, AuthRegistry, DecisionEngine, RoleHierarchy
from authz.core.config import Settings
from authz.core.interfaces import AuditSink, DecisionCache, GrantStore, PolicyStore

logger = structlog.get_logger(__name__)


@dataclass
class Container:
    """
    Holds the configured engine, admin service and backends.

    Backends may be passed in directly (tests); anything missing is built
    from settings by from_settings().
    """

    grant_store: GrantStore
    policy_store: PolicyStore
    cache: DecisionCache | None = None
    audit_sink: AuditSink | None = None
    hierarchy: RoleHierarchy = field(default_factory=RoleHierarchy)
    cache_ttl: int = 300
    decision_timeout: float | None = None
    db_engine: AsyncEngine | None = None
    session_factory: async_sessionmaker[AsyncSession] | None = None

    _instances: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Container":
        """Build every backend selected by settings."""
        from authz.implementations.audit import DatabaseAuditSink, LogAuditSink
        from authz.implementations.stores import (
            MemoryGrantStore,
            MemoryPolicyStore,
            SQLAlchemyGrantStore,
            SQLAlchemyPolicyStore,
        )
        from authz.models.database import create_engine, create_session_factory

        authz = settings.authz
        db_engine = None
        session_factory = None

        if authz.store_backend == "database" or settings.audit.backend == "database":
            db_engine = create_engine(settings.database)
            session_factory = create_session_factory(db_engine)

        if authz.store_backend == "database":
            grant_store = SQLAlchemyGrantStore(session_factory)
            policy_store = SQLAlchemyPolicyStore(session_factory)
        else:
            grant_store = MemoryGrantStore()
            policy_store = MemoryPolicyStore()

        if authz.cache_backend == "redis":
            cache = AuthRegistry.get_decision_cache(
                "redis",
                redis_url=authz.cache_redis_url,
                prefix=authz.cache_prefix,
                default_ttl=authz.cache_ttl,
            )
        else:
            cache = AuthRegistry.get_decision_cache(
                authz.cache_backend,
                default_ttl=authz.cache_ttl,
                shards=authz.cache_shards,
            )

        if settings.audit.backend == "database":
            audit_sink = DatabaseAuditSink(session_factory)
        else:
            audit_sink = LogAuditSink()

        return cls(
            grant_store=grant_store,
            policy_store=policy_store,
            cache=cache,
            audit_sink=audit_sink,
            hierarchy=RoleHierarchy(allow_super_admin_peers=authz.allow_super_admin_peers),
            cache_ttl=authz.cache_ttl,
            decision_timeout=authz.decision_timeout,
            db_engine=db_engine,
            session_factory=session_factory,
        )

    @property
    def engine(self) -> DecisionEngine:
        """Get the decision engine."""
        if "engine" not in self._instances:
            self._instances["engine"] = DecisionEngine(
                self.grant_store,
                self.policy_store,
                cache=self.cache,
                audit_sink=self.audit_sink,
                hierarchy=self.hierarchy,
                cache_ttl=self.cache_ttl,
                default_timeout=self.decision_timeout,
            )
        return self._instances["engine"]

    @property
    def admin(self) -> AuthorizationAdminService:
        """Get the administration service."""
        if "admin" not in self._instances:
            self._instances["admin"] = AuthorizationAdminService(
                self.engine,
                self.grant_store,
                self.policy_store,
                audit_sink=self.audit_sink,
            )
        return self._instances["admin"]

    async def initialize(self) -> None:
        """Initialize backends that need async setup."""
        connect = getattr(self.cache, "connect", None)
        if connect is not None:
            await connect()

        seed = getattr(self.grant_store, "seed_role_defaults", None)
        if seed is not None:
            await seed()

        logger.info(
            "Authorization container initialized",
            grant_store=type(self.grant_store).__name__,
            cache=type(self.cache).__name__ if self.cache is not None else None,
            audit_sink=type(self.audit_sink).__name__ if self.audit_sink is not None else None,
        )

    async def shutdown(self) -> None:
        """Shutdown backends gracefully."""
        disconnect = getattr(self.cache, "disconnect", None)
        if disconnect is not None:
            await disconnect()
        if self.db_engine is not None:
            await self.db_engine.dispose()
