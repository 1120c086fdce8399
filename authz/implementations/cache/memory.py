"""
In-memory decision cache.

Sharded map of per-user EffectivePermissionSet entries, each shard guarded
by a threading.Lock. Critical sections are plain dict operations; nothing
awaits while a lock is held, so one instance is safe across tasks and threads.

Note: Not shared between processes. Use RedisDecisionCache for multi-process
deployments.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from authz.core.auth.models import EffectivePermissionSet
from authz.core.auth.registry import AuthRegistry


@dataclass
class CacheEntry:
    """Cached set with the generation it was computed under."""
    value: EffectivePermissionSet
    generation: int
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass
class _Shard:
    lock: threading.Lock = field(default_factory=threading.Lock)
    entries: dict[str, CacheEntry] = field(default_factory=dict)
    generations: dict[str, int] = field(default_factory=dict)
    # Bumped by clear(); part of every user's generation
    base: int = 0

    def generation(self, user_id: str) -> int:
        return self.base + self.generations.get(user_id, 0)


@AuthRegistry.decision_cache("memory")
class MemoryDecisionCache:
    """
    In-memory decision cache with TTL and per-user generations.

    Usage:
        cache = MemoryDecisionCache(default_ttl=300, shards=16)

        generation = await cache.generation(user_id)
        permissions = await resolve(user_id)
        await cache.put(user_id, permissions, generation=generation)

        await cache.invalidate(user_id)  # next get() misses
    """

    def __init__(
        self,
        default_ttl: int = 300,
        shards: int = 16,
        clock: Callable[[], float] = time.monotonic,
    ):
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self.default_ttl = default_ttl
        self._clock = clock
        self._shards = [_Shard() for _ in range(shards)]

    def _shard(self, user_id: str) -> _Shard:
        return self._shards[hash(user_id) % len(self._shards)]

    async def get(self, user_id: str) -> EffectivePermissionSet | None:
        shard = self._shard(user_id)
        now = self._clock()
        with shard.lock:
            entry = shard.entries.get(user_id)
            if entry is None:
                return None
            if entry.generation != shard.generation(user_id) or entry.is_expired(now):
                del shard.entries[user_id]
                return None
            return entry.value

    async def generation(self, user_id: str) -> int:
        shard = self._shard(user_id)
        with shard.lock:
            return shard.generation(user_id)

    async def put(
        self,
        user_id: str,
        value: EffectivePermissionSet,
        ttl: int | None = None,
        generation: int | None = None,
    ) -> bool:
        ttl = self.default_ttl if ttl is None else ttl
        shard = self._shard(user_id)
        now = self._clock()
        with shard.lock:
            current = shard.generation(user_id)
            if generation is not None and generation != current:
                return False
            shard.entries[user_id] = CacheEntry(
                value=value,
                generation=current,
                expires_at=now + ttl if ttl else None,
            )
            return True

    async def invalidate(self, user_id: str) -> None:
        shard = self._shard(user_id)
        with shard.lock:
            shard.generations[user_id] = shard.generations.get(user_id, 0) + 1
            shard.entries.pop(user_id, None)

    async def clear(self) -> None:
        """Invalidate every user."""
        for shard in self._shards:
            with shard.lock:
                shard.base += 1
                shard.entries.clear()

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.entries)
        return total
