"""
Service dependencies.
"""

from typing import Annotated

from fastapi import Depends, Request

from authz.core.auth import AuthorizationAdminService, DecisionContext, DecisionEngine
from authz.core.container import Container
from authz.utils.context import client_ip_from_request, get_request_context


def get_container(request: Request) -> Container:
    """Get the container created by the app lifespan."""
    return request.app.state.container


def get_engine(container: Container = Depends(get_container)) -> DecisionEngine:
    """Get the decision engine."""
    return container.engine


def get_admin_service(container: Container = Depends(get_container)) -> AuthorizationAdminService:
    """Get the administration service."""
    return container.admin


def get_decision_context(request: Request) -> DecisionContext:
    """Build the policy condition context for the current request."""
    ctx = get_request_context()
    client_ip = ctx.client_ip if ctx and ctx.client_ip else client_ip_from_request(request)
    return DecisionContext(client_ip=client_ip)


Engine = Annotated[DecisionEngine, Depends(get_engine)]
AdminService = Annotated[AuthorizationAdminService, Depends(get_admin_service)]
RequestDecisionContext = Annotated[DecisionContext, Depends(get_decision_context)]
