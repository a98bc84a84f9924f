"""
Gateway proxy package.

This package contains the network client, node scoring and selection, and
node list discovery components of the node router.
"""

from .http_client import NetworkProbeClient, ProbeResult
from .load_balancer import NodeScorer, NodeSelector
from .service_discovery import (
    NodeListSource,
    RemoteNodeListSource,
    FileNodeListSource,
    create_source,
    parse_node_payload
)

__all__ = [
    "NetworkProbeClient",
    "ProbeResult",
    "NodeScorer",
    "NodeSelector",
    "NodeListSource",
    "RemoteNodeListSource",
    "FileNodeListSource",
    "create_source",
    "parse_node_payload"
]
