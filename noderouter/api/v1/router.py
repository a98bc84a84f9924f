"""
API v1 Router Configuration.

This module groups the admin endpoints of the node router:
- Health checks
- Node pool management
- Service rankings and overrides
- URL resolution
"""

from fastapi import APIRouter

from noderouter.api.v1.endpoints import health, nodes, routing, services

# Create main v1 router
api_router = APIRouter(prefix="/api/v1")

api_router.include_router(
    health.router,
    tags=["Health"]
)

api_router.include_router(
    nodes.router,
    tags=["Nodes"]
)

api_router.include_router(
    services.router,
    tags=["Services"]
)

api_router.include_router(
    routing.router,
    tags=["Routing"]
)
