"""
Node pool endpoints.

Listing, adding and removing nodes, plus on-demand health sweeps and list
refreshes.
"""

from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from noderouter.api.v1.deps import get_engine
from noderouter.config import get_logger
from noderouter.core.exceptions import ValidationError
from noderouter.models.node import Node, NodeStrategy
from noderouter.services.engine import RoutingEngine

logger = get_logger(__name__)

router = APIRouter(prefix="/nodes", tags=["nodes"])


class AddNodeRequest(BaseModel):
    """Request body for adding a user node."""
    service: str
    endpoint: str
    strategy: str = NodeStrategy.MIRROR.value
    name: Optional[str] = None
    probe_path: Optional[str] = None


class NodeListResponse(BaseModel):
    """Node listing."""
    nodes: List[Node] = Field(default_factory=list)
    total: int = 0


@router.get("", response_model=NodeListResponse, summary="List nodes")
async def list_nodes(
    service: Optional[str] = Query(default=None, description="Only nodes serving this service"),
    engine: RoutingEngine = Depends(get_engine)
) -> NodeListResponse:
    if service is not None:
        if service not in engine.store.services:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown service '{service}'"
            )
        nodes = list(engine.store.snapshot(service))
    else:
        nodes = list(engine.store.all_nodes())
    return NodeListResponse(nodes=nodes, total=len(nodes))


@router.get("/status", summary="Status board")
async def node_status(engine: RoutingEngine = Depends(get_engine)) -> Dict[str, Any]:
    """Per-service ranking of nodes with health, latency and score."""
    return engine.status_board()


@router.post(
    "",
    response_model=Node,
    status_code=status.HTTP_201_CREATED,
    summary="Add a user node"
)
async def add_node(request: AddNodeRequest, engine: RoutingEngine = Depends(get_engine)) -> Node:
    """
    Add a node and probe it once.

    Raises:
        HTTPException: 400 if the node is rejected
    """
    try:
        return await engine.add_user_node(
            request.service,
            request.endpoint,
            strategy=request.strategy,
            name=request.name,
            probe_path=request.probe_path
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": e.message, "field": e.field}
        )


@router.delete("/{node_id}", summary="Remove a node")
async def remove_node(node_id: str, engine: RoutingEngine = Depends(get_engine)) -> Dict[str, Any]:
    if not engine.remove_node(node_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Node '{node_id}' not found"
        )
    return {"removed": node_id}


@router.post("/sweep", summary="Run a health sweep now")
async def run_sweep(engine: RoutingEngine = Depends(get_engine)) -> Dict[str, Any]:
    report = await engine.health_sweep()
    return asdict(report)


@router.post("/refresh", summary="Refresh remote node lists now")
async def run_refresh(engine: RoutingEngine = Depends(get_engine)) -> Dict[str, Any]:
    report = await engine.refresh_nodes()
    return asdict(report)
