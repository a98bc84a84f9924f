"""URL resolution endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from noderouter.api.v1.deps import get_engine
from noderouter.models.node import RoutingDecision
from noderouter.services.engine import RoutingEngine

router = APIRouter(tags=["routing"])


class ResolveRequest(BaseModel):
    """URL to resolve."""
    url: str


@router.post("/resolve", response_model=RoutingDecision, summary="Resolve an outbound URL")
async def resolve(request: ResolveRequest, engine: RoutingEngine = Depends(get_engine)) -> RoutingDecision:
    return engine.explain(request.url)


@router.get("/classify", summary="Classify a host")
async def classify(
    host: str = Query(..., description="Host name, optionally with a port"),
    engine: RoutingEngine = Depends(get_engine)
) -> Dict[str, Any]:
    return {"host": host, "service": engine.classifier.classify(host)}
