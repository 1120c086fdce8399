"""
Database models.
"""

from .base import (
    Base,
    TimestampMixin,
    UUIDMixin,
)
from .authorization import (
    PermissionGrantRow,
    ResourcePolicyRow,
    RoleAssignmentRow,
    RoleDefaultPermissionRow,
)
from .audit_log import AuthorizationAuditLog

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Models
    "RoleAssignmentRow",
    "PermissionGrantRow",
    "RoleDefaultPermissionRow",
    "ResourcePolicyRow",
    "AuthorizationAuditLog",
]
