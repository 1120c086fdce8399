"""
Backend implementations for core interfaces.
"""

from authz.implementations.audit import DatabaseAuditSink, LogAuditSink
from authz.implementations.cache import MemoryDecisionCache, RedisDecisionCache
from authz.implementations.stores import (
    MemoryGrantStore,
    MemoryPolicyStore,
    SQLAlchemyGrantStore,
    SQLAlchemyPolicyStore,
)

__all__ = [
    "DatabaseAuditSink",
    "LogAuditSink",
    "MemoryDecisionCache",
    "RedisDecisionCache",
    "MemoryGrantStore",
    "MemoryPolicyStore",
    "SQLAlchemyGrantStore",
    "SQLAlchemyPolicyStore",
]
