"""
Effective permission resolver.

Computes, for a user, the full set of currently valid permissions:

1. Active role assignments (none -> implicit GUEST at level 0)
2. Effective role = highest-level active assignment
3. Default permissions of that role
4. Union of active direct grants

Expired rows are filtered here even if the store returned them;
nothing on this path mutates or deletes store rows. A cached set is only
served until the earliest expiry among the rows it was built from.
"""

import math
from datetime import datetime

import structlog

from authz.core.errors import AuthorizationError, StoreUnavailable
from authz.core.interfaces.cache import DecisionCache
from authz.core.interfaces.stores import GrantStore
from authz.utils.timezone import to_utc, utc_now

from .models import EffectivePermissionSet
from .permissions import normalize_permission_id
from .roles import IMPLICIT_LEVEL, Role, RoleHierarchy, parse_role

logger = structlog.get_logger(__name__)


class EffectivePermissionResolver:
    """
    Cache-backed resolver of EffectivePermissionSet.

    Configuration:
        cache: Optional DecisionCache; without it every call hits the store
        cache_ttl: TTL for cached sets (seconds)
    """

    def __init__(
        self,
        grant_store: GrantStore,
        cache: DecisionCache | None = None,
        cache_ttl: int = 300,
        hierarchy: RoleHierarchy | None = None,
    ):
        self.grant_store = grant_store
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.hierarchy = hierarchy or RoleHierarchy()

    async def resolve(
        self,
        user_id: str,
        now: datetime | None = None,
    ) -> EffectivePermissionSet:
        """
        Get the user's effective permission set.

        Raises:
            StoreUnavailable: If the grant store cannot be reached
            UnknownRole: If an assignment references an undefined role
            UnknownPermission: If a grant references an undefined permission
        """
        now = now or utc_now()

        if self.cache is not None:
            cached = await self.cache.get(user_id)
            if cached is not None and cached.is_valid(now):
                return cached
            # Read before touching the store; put() rejects the result if an
            # invalidation happens in between.
            generation = await self.cache.generation(user_id)

        permissions = await self.compute(user_id, now)

        if self.cache is not None:
            ttl = self._ttl_for(permissions, now)
            if ttl is None:
                return permissions
            stored = await self.cache.put(
                user_id,
                permissions,
                ttl=ttl,
                generation=generation,
            )
            if not stored:
                logger.debug("Discarded stale permission set", user_id=user_id)

        return permissions

    async def compute(self, user_id: str, now: datetime) -> EffectivePermissionSet:
        """Resolve straight from the store, bypassing the cache."""
        try:
            assignments = await self.grant_store.list_active_role_assignments(user_id, now)
            grants = await self.grant_store.list_active_permission_grants(user_id, now)
        except AuthorizationError:
            raise
        except Exception as e:
            logger.error("Grant store failed", user_id=user_id, error=str(e))
            raise StoreUnavailable(f"Grant store failed: {e}") from e

        active_assignments = [a for a in assignments if a.is_active(now)]
        active_roles = [parse_role(assignment.role) for assignment in active_assignments]

        if active_roles:
            role = max(active_roles, key=self.hierarchy.level)
            level = self.hierarchy.level(role)
            implicit = False
        else:
            role = Role.GUEST
            level = IMPLICIT_LEVEL
            implicit = True

        try:
            defaults = await self.grant_store.default_permissions_for_role(role)
        except AuthorizationError:
            raise
        except Exception as e:
            logger.error("Grant store failed", user_id=user_id, error=str(e))
            raise StoreUnavailable(f"Grant store failed: {e}") from e

        permissions = set(defaults)
        active_grants = [grant for grant in grants if grant.is_active(now)]
        for grant in active_grants:
            permissions.add(normalize_permission_id(grant.permission_id))

        expiries = [
            to_utc(record.expires_at)
            for record in (*active_assignments, *active_grants)
            if record.expires_at is not None
        ]

        return EffectivePermissionSet(
            user_id=user_id,
            role=role,
            level=level,
            permissions=frozenset(permissions),
            implicit=implicit,
            valid_until=min(expiries, default=None),
        )

    def _ttl_for(self, permissions: EffectivePermissionSet, now: datetime) -> int | None:
        """
        Cache TTL for a set, capped at its earliest expiry.

        Returns None when the set must not be cached at all.
        """
        if permissions.valid_until is None:
            return self.cache_ttl
        remaining = math.ceil((permissions.valid_until - now).total_seconds())
        if remaining <= 0:
            return None
        return min(self.cache_ttl, remaining) if self.cache_ttl else remaining
