"""
Authorization management routes.

Caller identity comes from get_current_user_id; every mutation is gated
by the admin service (403 on ManagementDenied).
"""

from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, status

from authz.api.dependencies import (
    AdminService,
    CurrentUserId,
    Engine,
    RequestDecisionContext,
    get_container,
)
from authz.core.auth import (
    ROLE_LEVELS,
    PermissionAction,
    Role,
    all_permissions,
)
from authz.core.auth.roles import ROLE_DESCRIPTIONS, RoleHierarchy
from authz.core.container import Container
from authz.schemas.authorization import (
    AssignRoleRequest,
    CheckRequest,
    CheckResponse,
    EffectivePermissionsResponse,
    GrantPermissionRequest,
    PermissionGrantResponse,
    PermissionResponse,
    PolicyRequest,
    PolicyResponse,
    RevokeResponse,
    RoleAssignmentResponse,
    RoleResponse,
)

router = APIRouter()


async def _require_view(engine, caller_id: str, user_id: str, context) -> None:
    """Callers may inspect themselves; inspecting others needs users.read."""
    if caller_id == user_id:
        return
    verdict = await engine.authorize(caller_id, "users", PermissionAction.READ, user_id, context=context)
    if not verdict.allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=verdict.reason)


# ============================================================
# CATALOGUE
# ============================================================

@router.get("/roles", response_model=list[RoleResponse])
async def list_roles(
    _: CurrentUserId,
    container: Container = Depends(get_container),
):
    """List roles, highest level first, with their default permissions."""
    roles = []
    for role in RoleHierarchy.roles_by_level():
        defaults = await container.grant_store.default_permissions_for_role(role)
        roles.append(
            RoleResponse(
                name=role,
                level=ROLE_LEVELS[role],
                description=ROLE_DESCRIPTIONS[role],
                default_permissions=sorted(defaults),
            )
        )
    return roles


@router.put("/roles/{role}/permissions", response_model=RoleResponse)
async def set_role_defaults(
    role: Role,
    permissions: Annotated[list[str], Body(examples=[["events.read", "news.read"]])],
    caller_id: CurrentUserId,
    admin: AdminService,
    context: RequestDecisionContext,
):
    """Replace a role's default permissions (SUPER_ADMIN only)."""
    ids = await admin.set_role_defaults(caller_id, role, permissions, actor_ip=context.client_ip)
    return RoleResponse(
        name=role,
        level=ROLE_LEVELS[role],
        description=ROLE_DESCRIPTIONS[role],
        default_permissions=sorted(ids),
    )


@router.get("/permissions", response_model=list[PermissionResponse])
async def list_permissions(_: CurrentUserId):
    """List the permission catalogue."""
    return [
        PermissionResponse(id=p.id, resource=p.resource, action=p.action)
        for p in all_permissions()
    ]


# ============================================================
# EFFECTIVE PERMISSIONS AND CHECKS
# ============================================================

@router.get("/me/permissions", response_model=EffectivePermissionsResponse)
async def my_permissions(caller_id: CurrentUserId, engine: Engine):
    """Get the caller's effective role and permissions."""
    permissions = await engine.effective_permissions(caller_id)
    return EffectivePermissionsResponse.from_set(permissions)


@router.get("/users/{user_id}/permissions", response_model=EffectivePermissionsResponse)
async def user_permissions(
    user_id: str,
    caller_id: CurrentUserId,
    engine: Engine,
    context: RequestDecisionContext,
):
    """Get a user's effective role and permissions."""
    await _require_view(engine, caller_id, user_id, context)
    permissions = await engine.effective_permissions(user_id)
    return EffectivePermissionsResponse.from_set(permissions)


@router.post("/users/{user_id}/check", response_model=CheckResponse)
async def check_permission(
    user_id: str,
    data: CheckRequest,
    caller_id: CurrentUserId,
    engine: Engine,
    context: RequestDecisionContext,
):
    """Run an authorization decision for a user."""
    await _require_view(engine, caller_id, user_id, context)
    verdict = await engine.authorize(
        user_id,
        data.resource,
        data.action,
        data.resource_id,
        context=context,
    )
    return CheckResponse(allowed=verdict.allowed, reason=verdict.reason)


# ============================================================
# ROLE ASSIGNMENTS
# ============================================================

@router.post(
    "/users/{user_id}/roles",
    response_model=RoleAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_role(
    user_id: str,
    data: AssignRoleRequest,
    caller_id: CurrentUserId,
    admin: AdminService,
    context: RequestDecisionContext,
):
    """Assign a role to a user."""
    assignment = await admin.assign_role(
        caller_id,
        user_id,
        data.role,
        data.expires_at,
        actor_ip=context.client_ip,
    )
    return RoleAssignmentResponse.from_assignment(assignment)


@router.delete("/users/{user_id}/roles/{role}", response_model=RevokeResponse)
async def revoke_role(
    user_id: str,
    role: Role,
    caller_id: CurrentUserId,
    admin: AdminService,
    context: RequestDecisionContext,
):
    """Revoke a role from a user."""
    removed = await admin.revoke_role(caller_id, user_id, role, actor_ip=context.client_ip)
    return RevokeResponse(removed=removed)


# ============================================================
# DIRECT GRANTS
# ============================================================

@router.post(
    "/users/{user_id}/permissions",
    response_model=PermissionGrantResponse,
    status_code=status.HTTP_201_CREATED,
)
async def grant_permission(
    user_id: str,
    data: GrantPermissionRequest,
    caller_id: CurrentUserId,
    admin: AdminService,
    context: RequestDecisionContext,
):
    """Grant a permission directly to a user."""
    grant = await admin.grant_permission(
        caller_id,
        user_id,
        data.permission,
        data.expires_at,
        actor_ip=context.client_ip,
    )
    return PermissionGrantResponse.from_grant(grant)


@router.delete("/users/{user_id}/permissions/{permission_id}", response_model=RevokeResponse)
async def revoke_permission(
    user_id: str,
    permission_id: str,
    caller_id: CurrentUserId,
    admin: AdminService,
    context: RequestDecisionContext,
):
    """Revoke a direct permission grant."""
    removed = await admin.revoke_permission(
        caller_id,
        user_id,
        permission_id,
        actor_ip=context.client_ip,
    )
    return RevokeResponse(removed=removed)


# ============================================================
# POLICIES
# ============================================================

@router.put("/policies", response_model=PolicyResponse)
async def upsert_policy(
    data: PolicyRequest,
    caller_id: CurrentUserId,
    admin: AdminService,
    context: RequestDecisionContext,
):
    """Create or replace a resource policy."""
    policy = await admin.upsert_policy(caller_id, data.to_policy(), actor_ip=context.client_ip)
    return PolicyResponse.from_policy(policy)


@router.delete("/policies/{policy_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_policy(
    policy_id: str,
    caller_id: CurrentUserId,
    admin: AdminService,
    context: RequestDecisionContext,
):
    """Delete a resource policy."""
    await admin.delete_policy(caller_id, policy_id, actor_ip=context.client_ip)
