"""
Node store for the node router.

The store owns the node pool. Every mutation builds a new immutable pool
state and swaps it in with a single assignment, so readers always see either
the whole previous pool or the whole new one.
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError as ModelValidationError

from noderouter.config import get_logger
from noderouter.core.exceptions import ValidationError
from noderouter.gateway.proxy.load_balancer import NodeScorer
from noderouter.models.node import (
    SOURCE_RANK, HealthSample, Node, NodeHealth, NodeSource, NodeStrategy
)
from noderouter.services.persistence import KeyValueStore
from noderouter.utils.helpers import is_valid_probe_path, is_valid_url, normalize_endpoint

logger = get_logger(__name__)

NODES_KEY = "nodes"
CUSTOM_NODES_KEY = "custom_nodes"

HEALTH_FIELDS = ("health", "latency_ms", "recent_probes", "checked_at")
_NEVER = datetime.min.replace(tzinfo=timezone.utc)


def _observed_at(node: Node) -> datetime:
    return node.checked_at or _NEVER


def _combine(current: Node, incoming: Node) -> Node:
    """Merge two copies of the same node."""
    fresher = incoming if _observed_at(incoming) >= _observed_at(current) else current
    source = max(current.source, incoming.source, key=lambda value: SOURCE_RANK[value])
    update: Dict[str, Any] = {name: getattr(fresher, name) for name in HEALTH_FIELDS}
    update["source"] = source
    update["origin"] = incoming.origin if incoming.origin is not None else current.origin
    return incoming.model_copy(update=update)


def merge_nodes(existing: Iterable[Node], incoming: Iterable[Node]) -> List[Node]:
    """
    Merge two node lists, de-duplicating by id.

    For a duplicate id the incoming descriptive attributes win, the health
    attributes come from whichever copy was observed most recently, and the
    source is the strongest of the two (user-added, then builtin, then
    remote-fetched). Nothing present in ``existing`` is dropped.

    Args:
        existing: Nodes already known
        incoming: Newly received nodes

    Returns:
        Merged list, existing order first, new ids appended
    """
    merged: Dict[str, Node] = {}
    for node in list(existing) + list(incoming):
        current = merged.get(node.id)
        merged[node.id] = node if current is None else _combine(current, node)
    return list(merged.values())


@dataclass(frozen=True)
class PoolState:
    """Immutable view of the node pool."""
    nodes: Mapping[str, Node]
    by_service: Mapping[str, Tuple[Node, ...]]


@dataclass
class MergeResult:
    """What a merge changed."""
    added: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)


class NodeStore:
    """Holds candidate nodes per service and their last known health."""

    def __init__(
        self,
        services: Sequence[str],
        scorer: Optional[NodeScorer] = None,
        persistence: Optional[KeyValueStore] = None,
        stability_window: int = 20
    ):
        """
        Initialize the node store.

        Args:
            services: Closed set of recognised services
            scorer: Scorer used to order snapshots
            persistence: Optional key-value store for the pool
            stability_window: Number of probe outcomes kept per node
        """
        self._services: Tuple[str, ...] = tuple(services)
        self._known = frozenset(self._services)
        self.scorer = scorer or NodeScorer()
        self.persistence = persistence
        self.stability_window = stability_window
        self._write_lock = threading.RLock()
        self._state = self._build_state({})

    @property
    def services(self) -> Tuple[str, ...]:
        return self._services

    def _build_state(self, nodes: Dict[str, Node]) -> PoolState:
        by_service: Dict[str, Tuple[Node, ...]] = {}
        for service in self._services:
            members = [node for node in nodes.values() if node.serves(service)]
            members.sort(key=self.scorer.sort_key)
            by_service[service] = tuple(members)
        return PoolState(nodes=MappingProxyType(dict(nodes)), by_service=MappingProxyType(by_service))

    def _restrict(self, node: Node) -> Optional[Node]:
        """Drop unknown services; reject nodes left with none."""
        services = node.services & self._known
        if not services:
            return None
        if services != node.services:
            node = node.model_copy(update={"services": services})
        return node

    def snapshot(self, service: str) -> Tuple[Node, ...]:
        """
        Nodes serving a service, best first.

        The returned tuple is immutable and unaffected by later mutations.
        """
        return self._state.by_service.get(service, ())

    def all_nodes(self) -> Tuple[Node, ...]:
        return tuple(self._state.nodes.values())

    def get(self, node_id: str) -> Optional[Node]:
        return self._state.nodes.get(node_id)

    def __len__(self) -> int:
        return len(self._state.nodes)

    def merge(self, incoming: Iterable[Node], prune_origins: Iterable[str] = ()) -> MergeResult:
        """
        Merge nodes into the pool.

        Args:
            incoming: Nodes to merge
            prune_origins: Remote sources whose current lists are complete in
                ``incoming``; remote-fetched nodes from these sources that are
                absent from ``incoming`` are removed

        Returns:
            MergeResult describing the change
        """
        result = MergeResult()
        accepted: List[Node] = []
        for node in incoming:
            restricted = self._restrict(node)
            if restricted is None:
                result.rejected.append(node.id)
                continue
            accepted.append(restricted)

        if result.rejected:
            logger.warning(
                "Rejected nodes serving no known service",
                extra={"node_ids": result.rejected, "known_services": list(self._services)}
            )

        prune = set(prune_origins)
        incoming_ids = {node.id for node in accepted}

        with self._write_lock:
            current = self._state.nodes
            merged = {node.id: node for node in merge_nodes(current.values(), accepted)}

            for node_id in incoming_ids:
                (result.updated if node_id in current else result.added).append(node_id)

            for node_id, node in list(merged.items()):
                if (
                    node.source == NodeSource.REMOTE_FETCHED
                    and node.origin in prune
                    and node_id not in incoming_ids
                ):
                    del merged[node_id]
                    result.removed.append(node_id)

            self._state = self._build_state(merged)

        if result.added or result.removed:
            logger.info(
                "Node pool merged",
                extra={
                    "added": len(result.added),
                    "updated": len(result.updated),
                    "removed": len(result.removed),
                    "pool_size": len(merged)
                }
            )
        return result

    def add_user_node(
        self,
        service: str,
        endpoint: str,
        strategy: str = NodeStrategy.MIRROR.value,
        name: Optional[str] = None,
        probe_path: Optional[str] = None
    ) -> Node:
        """
        Add a node submitted by the user.

        Args:
            service: Service the node should serve
            endpoint: Absolute http(s) URL of the node
            strategy: Rewrite strategy
            name: Optional label
            probe_path: Optional health probe path

        Returns:
            The new node, with ``health=unknown`` and ``source=user-added``

        Raises:
            ValidationError: If the service, endpoint, strategy or probe path is invalid
        """
        if service not in self._known:
            raise ValidationError(f"Unknown service '{service}'", field="service")

        endpoint = normalize_endpoint(endpoint or "")
        if not is_valid_url(endpoint):
            raise ValidationError(f"'{endpoint}' is not an absolute http(s) URL", field="endpoint")

        if strategy not in {item.value for item in NodeStrategy}:
            raise ValidationError(f"Unsupported strategy '{strategy}'", field="strategy")

        path = (probe_path or "/").strip()
        if not path.startswith("/"):
            path = "/" + path
        if not is_valid_probe_path(path):
            raise ValidationError(f"{path!r} is not a usable probe path", field="probe_path")

        with self._write_lock:
            node_id = f"user-{uuid.uuid4().hex[:12]}"
            while node_id in self._state.nodes:
                node_id = f"user-{uuid.uuid4().hex[:12]}"

            node = Node(
                id=node_id,
                name=name or "",
                endpoint=endpoint,
                services=frozenset([service]),
                strategy=strategy,
                health=NodeHealth.UNKNOWN,
                source=NodeSource.USER_ADDED,
                probe_path=path
            )
            nodes = dict(self._state.nodes)
            nodes[node_id] = node
            self._state = self._build_state(nodes)

        logger.info(
            "User node added",
            extra={"node_id": node_id, "service": service, "endpoint": endpoint, "strategy": strategy}
        )
        self.persist()
        return node

    def remove_node(self, node_id: str) -> bool:
        """
        Remove a node explicitly.

        Returns:
            True if the node existed
        """
        with self._write_lock:
            if node_id not in self._state.nodes:
                return False
            nodes = dict(self._state.nodes)
            removed = nodes.pop(node_id)
            self._state = self._build_state(nodes)

        logger.info("Node removed", extra={"node_id": node_id, "source": removed.source.value})
        self.persist()
        return True

    def update_health(self, node_id: str, sample: HealthSample) -> Optional[Node]:
        """
        Apply a health sample to a node.

        A sample for a node that no longer exists is ignored.

        Returns:
            The updated node, or None if the node is gone
        """
        with self._write_lock:
            current = self._state.nodes.get(node_id)
            if current is None:
                logger.debug("Health sample for unknown node ignored", extra={"node_id": node_id})
                return None

            window = (current.recent_probes + (sample.ok,))[-self.stability_window:]
            updated = current.model_copy(update={
                "health": sample.health,
                "latency_ms": sample.latency_ms,
                "recent_probes": window,
                "checked_at": sample.checked_at
            })
            nodes = dict(self._state.nodes)
            nodes[node_id] = updated
            self._state = self._build_state(nodes)
        return updated

    def persist(self) -> None:
        """Write the pool and the user-added subset to persistence."""
        if self.persistence is None:
            return
        nodes = self.all_nodes()
        self.persistence.set(NODES_KEY, [node.model_dump(mode="json") for node in nodes])
        self.persistence.set(
            CUSTOM_NODES_KEY,
            [node.model_dump(mode="json") for node in nodes if node.source == NodeSource.USER_ADDED]
        )

    def load(self) -> int:
        """
        Restore persisted nodes on top of the current pool.

        Builtin nodes only keep their persisted health, and only while the
        configuration still ships them. Unreadable entries are skipped.

        Returns:
            Number of nodes restored
        """
        if self.persistence is None:
            return 0

        restored: List[Node] = []
        skipped = 0
        for key in (NODES_KEY, CUSTOM_NODES_KEY):
            entries = self.persistence.get(key, [])
            if not isinstance(entries, list):
                logger.warning("Persisted node list is not a list", extra={"key": key})
                continue
            for entry in entries:
                try:
                    restored.append(Node.model_validate(entry))
                except ModelValidationError:
                    skipped += 1

        if skipped:
            logger.warning("Skipped unreadable persisted nodes", extra={"skipped": skipped})

        incoming: List[Node] = []
        for node in restored:
            if node.source == NodeSource.BUILTIN:
                current = self.get(node.id)
                if current is None:
                    continue
                node = current.model_copy(update={name: getattr(node, name) for name in HEALTH_FIELDS})
            incoming.append(node)

        self.merge(incoming)
        return len(incoming)
