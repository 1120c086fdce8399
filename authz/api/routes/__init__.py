"""
API routes aggregation.
"""

from fastapi import APIRouter

from .authorization import router as authorization_router

router = APIRouter()

router.include_router(authorization_router, prefix="/authz", tags=["authorization"])
