"""
Core interfaces (protocols) for extensibility.
All backends must implement these protocols to be swappable.
"""

from .cache import DecisionCache
from .stores import GrantStore, PolicyStore
from .audit import AuditSink, AuditEvent, AuditEventType

__all__ = [
    "DecisionCache",
    "GrantStore",
    "PolicyStore",
    "AuditSink",
    "AuditEvent",
    "AuditEventType",
]
