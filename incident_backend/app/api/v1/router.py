"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from incident_backend.app.api.v1.endpoints import admin, analytics, auth, records

router = APIRouter()

router.include_router(auth.router)
router.include_router(records.router)
router.include_router(analytics.router)
router.include_router(admin.router)
