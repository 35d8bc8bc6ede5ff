"""
API v1 Router

All org-scoped endpoints are prefixed with /orgs/{orgSlug}; the public
status feed lives under /status/{slug}.
"""

from fastapi import APIRouter
from . import analytics, incidents, maintenances, services, status
from .organizations import router_global as orgs_global_router
from .organizations import router_scoped as orgs_scoped_router

router = APIRouter()

# Organization routes (non-org-scoped: create)
router.include_router(orgs_global_router)

# Organization routes (org-scoped: get, update, subscribers)
router.include_router(orgs_scoped_router, prefix="/orgs/{orgSlug}", tags=["Organizations"])

# Include resource routers
router.include_router(services.router, prefix="/orgs/{orgSlug}/services", tags=["Services"])
router.include_router(incidents.router, prefix="/orgs/{orgSlug}/incidents", tags=["Incidents"])
router.include_router(
    maintenances.router, prefix="/orgs/{orgSlug}/maintenances", tags=["Maintenances"]
)
router.include_router(analytics.router, prefix="/orgs/{orgSlug}/analytics", tags=["Analytics"])
router.include_router(status.router, prefix="/status", tags=["Status"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/orgs",
            "/orgs/{orgSlug}/services",
            "/orgs/{orgSlug}/incidents",
            "/orgs/{orgSlug}/maintenances",
            "/orgs/{orgSlug}/subscribers",
            "/orgs/{orgSlug}/analytics",
            "/status/{slug}",
        ],
    }
