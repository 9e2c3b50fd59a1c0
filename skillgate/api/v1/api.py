"""
API v1 router combining all v1 endpoints.
"""
from fastapi import APIRouter
from skillgate.api.v1 import access, admin, health, test_types, tests

api_router = APIRouter()

# Include all v1 routers
api_router.include_router(health.router, tags=["health"])
api_router.include_router(test_types.router, prefix="/test-types", tags=["test-types"])
api_router.include_router(access.router, prefix="/access", tags=["access"])
api_router.include_router(tests.router, prefix="/tests", tags=["tests"])
api_router.include_router(admin.router, prefix="/admin")
