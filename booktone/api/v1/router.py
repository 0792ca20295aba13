"""
API v1 router - aggregates all endpoint routers.
"""
from fastapi import APIRouter

from booktone.api.v1.endpoints import health, recommendations

# Create main API router
api_router = APIRouter()

# Include endpoint routers
api_router.include_router(health.router)
api_router.include_router(recommendations.router)
