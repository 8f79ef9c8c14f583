"""
API Router
==========
Main API router combining all endpoint modules.
"""

from fastapi import APIRouter

from backend.api.endpoints import alerts, health, stats, track

api_router = APIRouter()

# Probes stay unversioned
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(track.router, prefix="/v1/track", tags=["Tracking"])
api_router.include_router(alerts.router, prefix="/v1/alerts", tags=["Alerts"])
api_router.include_router(stats.router, prefix="/v1/stats", tags=["Stats"])
