"""
Node list discovery for the node router.

This module fetches candidate node lists from remote or on-disk sources and
turns their payloads into Node models.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import yaml

from noderouter.config import NodeSourceConfig, get_logger
from noderouter.core.exceptions import FetchFailure
from noderouter.gateway.proxy.http_client import NetworkProbeClient
from noderouter.models.node import Node, NodeSource, NodeStrategy
from noderouter.utils.helpers import derive_node_id, is_valid_probe_path, is_valid_url, normalize_endpoint

logger = get_logger(__name__)

STRATEGY_ALIASES = {
    "cdn": NodeStrategy.CDN_REWRITE.value,
    "cdn_rewrite": NodeStrategy.CDN_REWRITE.value,
}


def _parse_entry(
    entry: Any,
    origin: str,
    default_services: Sequence[str]
) -> Optional[Node]:
    """Build a Node from one payload entry, or None if it is unusable."""
    if isinstance(entry, str):
        entry = {"endpoint": entry}
    if not isinstance(entry, dict):
        return None

    endpoint = entry.get("endpoint") or entry.get("url") or entry.get("host")
    if not isinstance(endpoint, str):
        return None
    if "://" not in endpoint:
        endpoint = "https://" + endpoint
    endpoint = normalize_endpoint(endpoint)
    if not is_valid_url(endpoint):
        return None

    services = entry.get("services")
    if services is None and entry.get("service"):
        services = [entry["service"]]
    if services is None:
        services = list(default_services)
    if isinstance(services, str):
        services = [services]
    if not isinstance(services, list) or not services:
        return None

    strategy = str(entry.get("strategy") or entry.get("type") or NodeStrategy.MIRROR.value).lower()
    strategy = STRATEGY_ALIASES.get(strategy, strategy)

    node_id = entry.get("id")
    node_id = str(node_id) if node_id not in (None, "") else derive_node_id(endpoint, strategy)

    probe_path = entry.get("probe_path") or entry.get("healthCheck") or "/"
    if isinstance(probe_path, str) and "://" in probe_path:
        # Some lists carry a full health check URL; keep only its path
        probe_path = "/" + probe_path.split("://", 1)[1].partition("/")[2]
    if not isinstance(probe_path, str):
        return None
    if not probe_path.startswith("/"):
        probe_path = "/" + probe_path
    if not is_valid_probe_path(probe_path):
        return None

    return Node(
        id=node_id,
        name=str(entry.get("name") or ""),
        endpoint=endpoint,
        services=frozenset(str(service) for service in services),
        strategy=strategy,
        source=NodeSource.REMOTE_FETCHED,
        origin=origin,
        probe_path=probe_path
    )


def parse_node_payload(
    payload: Any,
    origin: str,
    default_services: Sequence[str] = ()
) -> List[Node]:
    """
    Parse a node list payload.

    Accepted shapes:
    - ``{"nodes": [...]}``
    - a bare list of entries
    - a service-keyed mapping, ``{"code-hosting": [...], ...}``

    Entries are objects or bare endpoint strings. Unusable entries are
    skipped with a warning.

    Args:
        payload: Decoded JSON or YAML document
        origin: Source name recorded on every node
        default_services: Services assumed for entries that name none

    Raises:
        FetchFailure: If the payload has none of the accepted shapes
    """
    groups: List[tuple] = []
    if isinstance(payload, dict) and "nodes" in payload:
        if not isinstance(payload["nodes"], list):
            raise FetchFailure(origin, "'nodes' is not a list")
        groups.append((payload["nodes"], default_services))
    elif isinstance(payload, list):
        groups.append((payload, default_services))
    elif isinstance(payload, dict) and payload and all(isinstance(value, list) for value in payload.values()):
        for service, entries in payload.items():
            groups.append((entries, [service]))
    else:
        raise FetchFailure(origin, "unrecognized node list payload")

    nodes: List[Node] = []
    skipped = 0
    for entries, services in groups:
        for entry in entries:
            node = _parse_entry(entry, origin, services)
            if node is None:
                skipped += 1
                continue
            nodes.append(node)

    if skipped:
        logger.warning(
            "Skipped malformed node list entries",
            extra={"source": origin, "skipped": skipped, "accepted": len(nodes)}
        )
    return nodes


class NodeListSource:
    """Abstract base class for node list sources."""

    name: str = "source"

    async def fetch(self) -> List[Node]:
        """
        Fetch the current node list.

        Returns:
            Nodes listed by the source

        Raises:
            FetchFailure: If the source is unreachable or its payload is malformed
        """
        raise NotImplementedError


class RemoteNodeListSource(NodeListSource):
    """Node list published as JSON over HTTP(S)."""

    def __init__(
        self,
        name: str,
        url: str,
        client: NetworkProbeClient,
        timeout_seconds: float = 10.0,
        default_services: Iterable[str] = ()
    ):
        self.name = name
        self.url = url
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.default_services = list(default_services)

    async def fetch(self) -> List[Node]:
        logger.debug("Fetching node list", extra={"source": self.name, "url": self.url})
        payload = await self.client.fetch_json(self.url, self.timeout_seconds, source_name=self.name)
        return parse_node_payload(payload, self.name, self.default_services)


class FileNodeListSource(NodeListSource):
    """Node list kept in a local JSON or YAML file."""

    def __init__(self, name: str, path: str, default_services: Iterable[str] = ()):
        self.name = name
        self.path = Path(path)
        self.default_services = list(default_services)

    async def fetch(self) -> List[Node]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise FetchFailure(self.name, f"cannot read {self.path}: {e}")

        try:
            if self.path.suffix.lower() in (".yaml", ".yml"):
                payload = yaml.safe_load(text)
            else:
                payload = json.loads(text)
        except (ValueError, yaml.YAMLError) as e:
            raise FetchFailure(self.name, f"cannot parse {self.path}: {e}")

        return parse_node_payload(payload, self.name, self.default_services)


def create_source(config: NodeSourceConfig, client: NetworkProbeClient) -> NodeListSource:
    """Create the node list source described by a configuration entry."""
    if config.type == "file":
        return FileNodeListSource(config.name, config.path, config.services)
    return RemoteNodeListSource(
        name=config.name,
        url=config.url,
        client=client,
        timeout_seconds=config.timeout_seconds,
        default_services=config.services
    )


def describe_sources(sources: Sequence[NodeListSource]) -> List[Dict[str, Any]]:
    """Summaries of configured sources for status output."""
    summaries = []
    for source in sources:
        summary: Dict[str, Any] = {"name": source.name, "type": type(source).__name__}
        if isinstance(source, RemoteNodeListSource):
            summary["url"] = source.url
        elif isinstance(source, FileNodeListSource):
            summary["path"] = str(source.path)
        summaries.append(summary)
    return summaries
