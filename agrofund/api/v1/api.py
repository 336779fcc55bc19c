"""
V1 API router aggregation.

All versioned endpoint routers are mounted here under a common prefix.
The top-level ``main.py`` mounts this router at ``/api/v1``.
"""

from fastapi import APIRouter

from agrofund.api.v1.endpoints import (
    admin,
    auth,
    forms,
    investments,
    kyc,
    notifications,
    projects,
    realtime,
    users,
)

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["Auth"])
api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(projects.router, prefix="/projects", tags=["Projects"])
api_router.include_router(investments.router, prefix="/investments", tags=["Investments"])
api_router.include_router(kyc.router, prefix="/kyc", tags=["KYC"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
api_router.include_router(forms.router, prefix="/forms", tags=["Forms"])

# WebSocket routes carry their full path (/realtime/{table}).
api_router.include_router(realtime.router, tags=["Realtime"])
