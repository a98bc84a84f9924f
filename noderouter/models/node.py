"""
Node models for the node router.

This module defines data models for acceleration nodes, health samples and
routing decisions.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class NodeStrategy(str, Enum):
    """URL rewriting strategies a node can declare."""
    MIRROR = "mirror"
    PROXY = "proxy"
    CDN_REWRITE = "cdn-rewrite"


class NodeHealth(str, Enum):
    """Node health status."""
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DEAD = "dead"


class NodeSource(str, Enum):
    """Where a node came from."""
    USER_ADDED = "user-added"
    BUILTIN = "builtin"
    REMOTE_FETCHED = "remote-fetched"


# Higher rank wins when two copies of the same node are merged
SOURCE_RANK = {
    NodeSource.REMOTE_FETCHED: 0,
    NodeSource.BUILTIN: 1,
    NodeSource.USER_ADDED: 2,
}


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class Node(BaseModel):
    """An acceleration endpoint that can stand in for one or more services."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable identity, unique within the store")
    name: str = Field(default="", description="Human readable label")
    endpoint: str = Field(..., description="Base URL substituted into rewritten requests")
    services: FrozenSet[str] = Field(default_factory=frozenset, description="Services this node can serve")
    strategy: str = Field(default=NodeStrategy.MIRROR.value, description="Rewrite strategy")
    health: NodeHealth = Field(default=NodeHealth.UNKNOWN, description="Last known health")
    latency_ms: Optional[float] = Field(default=None, description="Last measured round trip in milliseconds")
    source: NodeSource = Field(default=NodeSource.REMOTE_FETCHED, description="Where the node came from")
    origin: Optional[str] = Field(default=None, description="Remote source that last listed the node")
    probe_path: str = Field(default="/", description="Path appended to the endpoint for health probes")
    recent_probes: Tuple[bool, ...] = Field(default=(), description="Recent probe outcomes, oldest first")
    checked_at: Optional[datetime] = Field(default=None, description="Time of the last applied health sample")

    @property
    def probe_url(self) -> str:
        """URL hit by the health prober."""
        path = self.probe_path or "/"
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.endpoint.rstrip('/')}{path}"

    def serves(self, service: str) -> bool:
        return service in self.services


class HealthSample(BaseModel):
    """Outcome of a single probe."""
    model_config = ConfigDict(frozen=True)

    node_id: str
    health: NodeHealth
    latency_ms: Optional[float] = None
    status_code: Optional[int] = None
    error: Optional[str] = None
    checked_at: datetime = Field(default_factory=utcnow)

    @property
    def ok(self) -> bool:
        return self.latency_ms is not None


class RoutingDecision(BaseModel):
    """Explains how an outbound URL was resolved."""
    original_url: str
    final_url: str
    service: Optional[str] = None
    node_id: Optional[str] = None
    strategy: Optional[str] = None
    reason: str = Field(..., description="Short machine readable outcome")

    @property
    def rewritten(self) -> bool:
        return self.final_url != self.original_url
