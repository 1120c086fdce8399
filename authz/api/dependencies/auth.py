"""
Caller identity dependencies.

The engine never authenticates: the host application resolves the caller
(session, JWT, API key...) and either stores the id on request.state.user_id
in its own middleware, or overrides get_current_user_id:

    app.dependency_overrides[get_current_user_id] = my_current_user_id

Usage:
    @router.get("/me/permissions")
    async def my_permissions(user_id: CurrentUserId):
        ...
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from authz.utils.context import set_context_user


async def get_current_user_id(request: Request) -> str:
    """
    Get the authenticated caller's id.

    Raises:
        HTTPException 401: If no caller was identified
    """
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    set_context_user(str(user_id))
    return str(user_id)


CurrentUserId = Annotated[str, Depends(get_current_user_id)]
