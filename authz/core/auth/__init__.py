"""
Authorization module - Decision engine.

Combines three sources of authority into an ALLOW/DENY verdict:
the static role hierarchy, per-user direct grants, and per-resource
conditional policies.

Usage:
=============

Decisions
---------
    from authz.core.auth import DecisionEngine, PermissionAction

    verdict = await engine.authorize(user_id, "events", PermissionAction.DELETE, "event-123")
    verdict.allowed   # bool
    verdict.reason    # "role/grant permission", "policy deny", ...

Management guard
----------------
    if await engine.can_manage_user(actor_id, target_id):
        ...

Administration
--------------
    from authz.core.auth import AuthorizationAdminService

    await admin.assign_role(actor_id, target_id, Role.EDITOR)
    await admin.revoke_permission(actor_id, target_id, "events.delete")

Extensibility:
=============

Add custom conditions:
    @AuthRegistry.condition("weekday")
    class WeekdayCondition(ConditionEvaluator):
        ...
"""

# Core interfaces
from .interfaces import (
    ConditionEvaluator,
    DecisionContext,
    Reason,
    Verdict,
)

# Registry
from .registry import AuthRegistry

# Domain
from .roles import ROLE_LEVELS, Role, RoleHierarchy
from .permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    RESOURCES,
    Permission,
    PermissionAction,
    all_permissions,
    permission_id,
)
from .models import (
    EffectivePermissionSet,
    PermissionGrant,
    PolicyEffect,
    ResourcePolicy,
    RoleAssignment,
)

# Components
from .resolver import EffectivePermissionResolver
from .evaluator import PolicyEvaluator, PolicyVerdict
from .engine import DecisionEngine
from .service import AuthorizationAdminService

__all__ = [
    # Interfaces
    "ConditionEvaluator",
    "DecisionContext",
    "Reason",
    "Verdict",
    # Registry
    "AuthRegistry",
    # Domain
    "ROLE_LEVELS",
    "Role",
    "RoleHierarchy",
    "DEFAULT_ROLE_PERMISSIONS",
    "RESOURCES",
    "Permission",
    "PermissionAction",
    "all_permissions",
    "permission_id",
    "EffectivePermissionSet",
    "PermissionGrant",
    "PolicyEffect",
    "ResourcePolicy",
    "RoleAssignment",
    # Components
    "EffectivePermissionResolver",
    "PolicyEvaluator",
    "PolicyVerdict",
    "DecisionEngine",
    "AuthorizationAdminService",
]
