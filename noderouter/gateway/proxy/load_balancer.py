"""
Node scoring and selection.

This module scores candidate nodes from their last measured latency and
recent probe stability, and picks the best node for a service.
"""

import re
from typing import TYPE_CHECKING, List, Optional, Tuple

from noderouter.config import ScoringConfig, get_logger
from noderouter.core.exceptions import NoCandidateNode
from noderouter.models.node import Node, NodeHealth

if TYPE_CHECKING:
    from noderouter.services.node_store import NodeStore

logger = get_logger(__name__)
_DIGIT_RUNS = re.compile(r"(\d+)")


def id_order(node_id: str) -> Tuple:
    """
    Ordering key for node ids that compares digit runs as numbers.

    Examples:
        "node-9" sorts before "node-10"
        "9" sorts before "10"
    """
    return tuple(
        (0, int(part), part) if part.isdecimal() else (1, 0, part)
        for part in _DIGIT_RUNS.split(node_id)
        if part
    )


class NodeScorer:
    """
    Weighted speed/stability score.

    ``speed`` is ``1 / (1 + latency / reference_latency)`` and drops strictly as
    latency grows. ``stability`` is the success ratio of the recent probe
    window. A term with no measurement behind it uses the neutral score so a
    freshly added node can be selected before its first probe.
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def speed(self, node: Node) -> float:
        if node.latency_ms is None or node.health == NodeHealth.UNKNOWN:
            return self.config.neutral_score
        return 1.0 / (1.0 + max(node.latency_ms, 0.0) / self.config.reference_latency_ms)

    def stability(self, node: Node) -> float:
        if not node.recent_probes:
            return self.config.neutral_score
        return sum(1 for ok in node.recent_probes if ok) / len(node.recent_probes)

    def score(self, node: Node) -> float:
        if node.health == NodeHealth.DEAD:
            return 0.0
        return (
            self.config.speed_weight * self.speed(node)
            + self.config.stability_weight * self.stability(node)
        )

    def sort_key(self, node: Node) -> Tuple[bool, float, Tuple]:
        """Ordering key: live nodes first, then score descending, then lowest id."""
        return (node.health == NodeHealth.DEAD, -self.score(node), id_order(node.id))


class NodeSelector:
    """Picks the node to use for a service from the current store snapshot."""

    def __init__(self, store: "NodeStore", scorer: NodeScorer):
        self.store = store
        self.scorer = scorer

    def candidates(self, service: str) -> List[Node]:
        """Non-dead nodes serving the service."""
        return [
            node for node in self.store.snapshot(service)
            if node.serves(service) and node.health != NodeHealth.DEAD
        ]

    def select(self, service: str) -> Optional[Node]:
        """
        Select the best node for a service.

        Args:
            service: Service name

        Returns:
            Highest scoring live node, ties broken by lowest id, or None if
            no live node serves the service
        """
        candidates = self.candidates(service)
        if not candidates:
            logger.debug("No eligible node", extra={"service": service})
            return None
        return min(candidates, key=self.scorer.sort_key)

    def select_or_raise(self, service: str) -> Node:
        """Like select, but raises NoCandidateNode instead of returning None."""
        node = self.select(service)
        if node is None:
            raise NoCandidateNode(service)
        return node

    def rank(self, service: str) -> List[Tuple[Node, float]]:
        """All nodes serving the service with their scores, best first."""
        nodes = sorted(
            (node for node in self.store.snapshot(service) if node.serves(service)),
            key=self.scorer.sort_key
        )
        return [(node, round(self.scorer.score(node), 4)) for node in nodes]
