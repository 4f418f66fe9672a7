"""
empsync API v1 Router
Aggregates all API endpoints
"""

from fastapi import APIRouter
from empsync.api.v1.endpoints import employees, sync, views

# Create main API router
api_router = APIRouter()

# Include endpoint routers
api_router.include_router(sync.router, prefix="/sync", tags=["sync"])
api_router.include_router(views.router, prefix="/views", tags=["views"])
api_router.include_router(employees.router, prefix="/employees", tags=["employees"])
api_router.include_router(employees.changes_router, prefix="/changes", tags=["changes"])
