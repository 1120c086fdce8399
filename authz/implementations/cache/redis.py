"""
Redis decision cache.

Keys (all under the configured prefix):
- perm:{user_id}  JSON permission set with the generation it was computed under
- gen:{user_id}   per-user generation counter (INCR on invalidate)
- epoch           global counter (INCR on clear)

A user's generation is gen:{user_id} + epoch. put() is a compare-and-set
script, so a value computed before an invalidation is never written after it.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from authz.core.auth.models import EffectivePermissionSet
from authz.core.auth.registry import AuthRegistry
from authz.core.auth.roles import parse_role
from authz.core.errors import StoreUnavailable
from authz.utils.timezone import from_iso8601

logger = structlog.get_logger(__name__)

# KEYS: perm key, gen key, epoch key
# ARGV: payload (with __GENERATION__ placeholder), expected generation or "", ttl
PUT_SCRIPT = """
local current = tonumber(redis.call('GET', KEYS[2]) or '0') + tonumber(redis.call('GET', KEYS[3]) or '0')
if ARGV[2] ~= '' and tonumber(ARGV[2]) ~= current then
    return 0
end
local payload = string.gsub(ARGV[1], '__GENERATION__', tostring(current), 1)
if tonumber(ARGV[3]) > 0 then
    redis.call('SET', KEYS[1], payload, 'EX', ARGV[3])
else
    redis.call('SET', KEYS[1], payload)
end
return 1
"""


@AuthRegistry.decision_cache("redis")
class RedisDecisionCache:
    """
    Redis decision cache shared by every process of a deployment.

    Usage:
        cache = RedisDecisionCache(redis_url="redis://localhost:6379/0", prefix="authz:")
        await cache.connect()

    Redis failures raise StoreUnavailable, which the engine turns into DENY.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "authz:",
        default_ttl: int = 300,
        client: redis.Redis | None = None,
        **kwargs: Any,
    ):
        self.redis_url = redis_url
        self.prefix = prefix
        self.default_ttl = default_ttl
        self._client: redis.Redis | None = client
        self._put_script = client.register_script(PUT_SCRIPT) if client is not None else None

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            self._put_script = self._client.register_script(PUT_SCRIPT)

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            self._client = None
            self._put_script = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Cache not connected. Call connect() first.")
        return self._client

    def _key(self, kind: str, user_id: str | None = None) -> str:
        key = f"{kind}:{user_id}" if user_id is not None else kind
        return f"{self.prefix}{key}"

    @staticmethod
    def _serialize(value: EffectivePermissionSet) -> str:
        return json.dumps({
            "generation": "__GENERATION__",
            "user_id": value.user_id,
            "role": value.role.value,
            "level": value.level,
            "permissions": sorted(value.permissions),
            "implicit": value.implicit,
            "valid_until": value.valid_until.isoformat() if value.valid_until else None,
        })

    @staticmethod
    def _deserialize(raw: str) -> tuple[EffectivePermissionSet, int]:
        data = json.loads(raw)
        value = EffectivePermissionSet(
            user_id=data["user_id"],
            role=parse_role(data["role"]),
            level=int(data["level"]),
            permissions=frozenset(data["permissions"]),
            implicit=bool(data["implicit"]),
            valid_until=from_iso8601(data["valid_until"]) if data.get("valid_until") else None,
        )
        return value, int(data["generation"])

    async def get(self, user_id: str) -> EffectivePermissionSet | None:
        try:
            raw, gen, epoch = await self.client.mget(
                self._key("perm", user_id),
                self._key("gen", user_id),
                self._key("epoch"),
            )
        except RedisError as e:
            raise StoreUnavailable(f"Decision cache failed: {e}") from e

        if raw is None:
            return None

        try:
            value, generation = self._deserialize(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Dropping unreadable cache entry", user_id=user_id, error=str(e))
            return None

        if generation != int(gen or 0) + int(epoch or 0):
            return None
        return value

    async def generation(self, user_id: str) -> int:
        try:
            gen, epoch = await self.client.mget(
                self._key("gen", user_id),
                self._key("epoch"),
            )
        except RedisError as e:
            raise StoreUnavailable(f"Decision cache failed: {e}") from e
        return int(gen or 0) + int(epoch or 0)

    async def put(
        self,
        user_id: str,
        value: EffectivePermissionSet,
        ttl: int | None = None,
        generation: int | None = None,
    ) -> bool:
        ttl = self.default_ttl if ttl is None else ttl
        if self._put_script is None:
            raise RuntimeError("Cache not connected. Call connect() first.")
        try:
            stored = await self._put_script(
                keys=[
                    self._key("perm", user_id),
                    self._key("gen", user_id),
                    self._key("epoch"),
                ],
                args=[
                    self._serialize(value),
                    "" if generation is None else str(generation),
                    str(ttl or 0),
                ],
            )
        except RedisError as e:
            raise StoreUnavailable(f"Decision cache failed: {e}") from e
        return bool(stored)

    async def invalidate(self, user_id: str) -> None:
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.incr(self._key("gen", user_id))
            pipe.delete(self._key("perm", user_id))
            await pipe.execute()
        except RedisError as e:
            logger.error("Cache invalidation failed", user_id=user_id, error=str(e))
            raise StoreUnavailable(f"Decision cache failed: {e}") from e

    async def clear(self) -> None:
        """Invalidate every user; stale entries expire through their TTL."""
        try:
            await self.client.incr(self._key("epoch"))
        except RedisError as e:
            logger.error("Cache clear failed", error=str(e))
            raise StoreUnavailable(f"Decision cache failed: {e}") from e
