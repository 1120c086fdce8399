"""
Permission checking dependencies.
"""

from typing import Callable

from fastapi import Depends, HTTPException, Request, status

from authz.core.auth import DecisionContext, DecisionEngine, PermissionAction

from .auth import get_current_user_id
from .services import get_decision_context, get_engine


def require_permission(
    resource: str,
    action: PermissionAction | str,
    resource_id_param: str | None = None,
) -> Callable:
    """
    Dependency factory that authorizes the caller for (resource, action).

    Usage:
    ```python
    @router.delete("/events/{event_id}")
    async def delete_event(
        event_id: str,
        user_id: str = Depends(require_permission("events", "DELETE", "event_id")),
    ):
        ...
    ```

    Returns the caller's id; raises 403 with the verdict reason on DENY.
    """

    async def check_permission(
        request: Request,
        user_id: str = Depends(get_current_user_id),
        engine: DecisionEngine = Depends(get_engine),
        context: DecisionContext = Depends(get_decision_context),
    ) -> str:
        resource_id = None
        if resource_id_param:
            resource_id = request.path_params.get(resource_id_param)

        verdict = await engine.authorize(
            user_id,
            resource,
            action,
            resource_id,
            context=context,
        )

        if not verdict.allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=verdict.reason,
            )

        return user_id

    return check_permission
