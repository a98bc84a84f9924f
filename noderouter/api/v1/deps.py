"""Shared FastAPI dependencies for the v1 API."""

from fastapi import HTTPException, Request, status

from noderouter.services.engine import RoutingEngine


def get_engine(request: Request) -> RoutingEngine:
    """Routing engine attached to the application at startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Routing engine not initialized"
        )
    return engine
