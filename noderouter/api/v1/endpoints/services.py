"""Service endpoints: known services, best node and user overrides."""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from noderouter.api.v1.deps import get_engine
from noderouter.core.exceptions import NoCandidateNode, ValidationError
from noderouter.models.node import Node
from noderouter.services.engine import RoutingEngine

router = APIRouter(prefix="/services", tags=["services"])


class OverrideRequest(BaseModel):
    """Request body for pinning a service to a node."""
    node_id: str


def _require_service(engine: RoutingEngine, service: str) -> None:
    if service not in engine.store.services:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown service '{service}'"
        )


@router.get("", summary="List services")
async def list_services(engine: RoutingEngine = Depends(get_engine)) -> Dict[str, Any]:
    overrides = engine.preferences.overrides()
    services: List[Dict[str, Any]] = [
        {
            "name": service.name,
            "description": service.description,
            "patterns": service.patterns,
            "node_count": len(engine.store.snapshot(service.name)),
            "override": overrides.get(service.name),
        }
        for service in engine.config.services
    ]
    return {"services": services, "total": len(services)}


@router.get("/{service}/best", response_model=Node, summary="Best node for a service")
async def best_node(service: str, engine: RoutingEngine = Depends(get_engine)) -> Node:
    """
    Highest scoring live node for the service.

    Raises:
        HTTPException: 404 if the service is unknown or has no live node
    """
    _require_service(engine, service)
    try:
        return engine.selector.select_or_raise(service)
    except NoCandidateNode as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.put("/{service}/override", summary="Pin a service to a node")
async def set_override(
    service: str,
    request: OverrideRequest,
    engine: RoutingEngine = Depends(get_engine)
) -> Dict[str, str]:
    _require_service(engine, service)
    try:
        engine.set_override(service, request.node_id)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": e.message, "field": e.field}
        )
    return {"service": service, "node_id": request.node_id}


@router.delete("/{service}/override", summary="Clear a service override")
async def clear_override(service: str, engine: RoutingEngine = Depends(get_engine)) -> Dict[str, Any]:
    _require_service(engine, service)
    return {"service": service, "cleared": engine.clear_override(service)}
