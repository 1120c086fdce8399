"""Grant and policy store implementations."""

from authz.implementations.stores.memory import MemoryGrantStore, MemoryPolicyStore
from authz.implementations.stores.sqlalchemy import SQLAlchemyGrantStore, SQLAlchemyPolicyStore

__all__ = [
    "MemoryGrantStore",
    "MemoryPolicyStore",
    "SQLAlchemyGrantStore",
    "SQLAlchemyPolicyStore",
]
