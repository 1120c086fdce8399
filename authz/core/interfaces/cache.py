"""
Decision cache protocol.
Implementations: MemoryDecisionCache, RedisDecisionCache

The cache memoizes EffectivePermissionSet per user. Every user has a
generation counter: invalidate() bumps it, and put() only stores a value
computed under the current generation. A resolution that started before a
revoke can therefore never publish its stale result after the revoke's
invalidation returned.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from authz.core.auth.models import EffectivePermissionSet


class DecisionCache(Protocol):
    """Protocol for per-user effective permission caches."""

    async def get(self, user_id: str) -> EffectivePermissionSet | None:
        """Get the cached set. Returns None on miss, expiry or stale generation."""
        ...

    async def generation(self, user_id: str) -> int:
        """Current generation of a user; read it BEFORE resolving."""
        ...

    async def put(
        self,
        user_id: str,
        value: EffectivePermissionSet,
        ttl: int | None = None,
        generation: int | None = None,
    ) -> bool:
        """
        Store a set computed under `generation`.

        Returns False (and stores nothing) when the user was invalidated
        since that generation was read.
        """
        ...

    async def invalidate(self, user_id: str) -> None:
        """Drop the user's entry and bump their generation."""
        ...

    async def clear(self) -> None:
        """Invalidate every user."""
        ...
