"""FastAPI dependencies."""

from .auth import CurrentUserId, get_current_user_id
from .permissions import require_permission
from .services import (
    AdminService,
    Engine,
    RequestDecisionContext,
    get_admin_service,
    get_container,
    get_decision_context,
    get_engine,
)

__all__ = [
    "CurrentUserId",
    "get_current_user_id",
    "require_permission",
    "AdminService",
    "Engine",
    "RequestDecisionContext",
    "get_admin_service",
    "get_container",
    "get_decision_context",
    "get_engine",
]
