"""
Request router for the node router.

Turns an outbound URL into the URL that should actually be requested:
classify the host, pick a node for the service and rewrite the URL with the
node's strategy. Resolution is total; every failure degrades to the original
URL.
"""

from typing import Optional

from noderouter.config import StructuredLogger, get_logger
from noderouter.core.exceptions import NoCandidateNode
from noderouter.gateway.proxy.load_balancer import NodeSelector
from noderouter.gateway.routing.classifier import ServiceClassifier
from noderouter.gateway.routing.rewrite import RewriteStrategyEngine
from noderouter.models.node import Node, NodeHealth, RoutingDecision
from noderouter.services.node_store import NodeStore
from noderouter.services.preferences import UserPreferences

logger = get_logger(__name__)
resolution_logger = StructuredLogger(__name__)


class RequestRouter:
    """Resolves outbound URLs against the current node pool."""

    def __init__(
        self,
        classifier: ServiceClassifier,
        selector: NodeSelector,
        rewriter: RewriteStrategyEngine,
        store: NodeStore,
        preferences: Optional[UserPreferences] = None
    ):
        self.classifier = classifier
        self.selector = selector
        self.rewriter = rewriter
        self.store = store
        self.preferences = preferences

    def resolve(self, original_url: str) -> str:
        """
        Resolve a URL to the URL that should be requested.

        Never raises and never performs I/O.
        """
        return self.explain(original_url).final_url

    def explain(self, original_url: str) -> RoutingDecision:
        """
        Resolve a URL and describe how the outcome was reached.

        Args:
            original_url: URL the caller intended to request

        Returns:
            RoutingDecision; ``final_url`` equals ``original_url`` for every
            pass-through outcome
        """
        try:
            decision = self._decide(original_url)
        except Exception as e:
            logger.error(
                "Resolution failed, passing request through",
                extra={"url": original_url, "error": str(e)},
                exc_info=True
            )
            decision = RoutingDecision(original_url=original_url, final_url=original_url, reason="error")

        resolution_logger.log_resolution(
            original_url=decision.original_url,
            final_url=decision.final_url,
            service=decision.service,
            node_id=decision.node_id,
            reason=decision.reason
        )
        return decision

    def _override_for(self, service: str) -> Optional[Node]:
        if self.preferences is None:
            return None
        node_id = self.preferences.get_override(service)
        if not node_id:
            return None
        node = self.store.get(node_id)
        if node is None or not node.serves(service) or node.health == NodeHealth.DEAD:
            return None
        return node

    def _decide(self, original_url: str) -> RoutingDecision:
        service = self.classifier.classify_url(original_url)
        if service is None:
            return RoutingDecision(original_url=original_url, final_url=original_url, reason="unclassified")

        node = self._override_for(service)
        reason = "override"
        if node is None:
            try:
                node = self.selector.select_or_raise(service)
            except NoCandidateNode:
                return RoutingDecision(
                    original_url=original_url,
                    final_url=original_url,
                    service=service,
                    reason="no_candidate"
                )
            reason = "selected"

        if not self.rewriter.supports(node.strategy):
            logger.warning(
                "Node declares an unsupported strategy",
                extra={"node_id": node.id, "strategy": node.strategy}
            )
            reason = "unsupported_strategy"

        return RoutingDecision(
            original_url=original_url,
            final_url=self.rewriter.rewrite(original_url, node),
            service=service,
            node_id=node.id,
            strategy=node.strategy,
            reason=reason
        )
