"""Decision cache implementations."""

from authz.implementations.cache.memory import MemoryDecisionCache
from authz.implementations.cache.redis import RedisDecisionCache

__all__ = ["MemoryDecisionCache", "RedisDecisionCache"]
