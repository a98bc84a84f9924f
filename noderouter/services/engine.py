"""
Routing engine composition root.

Builds every component once from configuration and wires them together
explicitly. Callers (the admin API, scripts, tests) hold one engine and go
through it.
"""

import asyncio
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from noderouter.config import RouterConfig, get_logger
from noderouter.core.exceptions import ValidationError
from noderouter.gateway.proxy.http_client import NetworkProbeClient
from noderouter.gateway.proxy.load_balancer import NodeScorer, NodeSelector
from noderouter.gateway.proxy.service_discovery import create_source, describe_sources
from noderouter.gateway.router import RequestRouter
from noderouter.gateway.routing.classifier import ServiceClassifier
from noderouter.gateway.routing.rewrite import RewriteStrategyEngine
from noderouter.models.node import Node, NodeSource, RoutingDecision
from noderouter.services.node_store import NodeStore
from noderouter.services.persistence import KeyValueStore, create_store
from noderouter.services.preferences import UserPreferences
from noderouter.services.prober import HealthProber
from noderouter.services.scheduler import RefreshReport, RefreshScheduler, SweepReport
from noderouter.utils.helpers import normalize_endpoint

logger = get_logger(__name__)


class RoutingEngine:
    """Facade over the classifier, store, prober, selector and scheduler."""

    def __init__(
        self,
        config: RouterConfig,
        classifier: ServiceClassifier,
        store: NodeStore,
        selector: NodeSelector,
        router: RequestRouter,
        prober: HealthProber,
        scheduler: RefreshScheduler,
        preferences: UserPreferences,
        client: NetworkProbeClient
    ):
        self.config = config
        self.classifier = classifier
        self.store = store
        self.selector = selector
        self.router = router
        self.prober = prober
        self.scheduler = scheduler
        self.preferences = preferences
        self.client = client

    def resolve(self, original_url: str) -> str:
        return self.router.resolve(original_url)

    def explain(self, original_url: str) -> RoutingDecision:
        return self.router.explain(original_url)

    async def add_user_node(
        self,
        service: str,
        endpoint: str,
        strategy: str = "mirror",
        name: Optional[str] = None,
        probe_path: Optional[str] = None
    ) -> Node:
        """
        Add a user node and probe it once.

        Raises:
            ValidationError: If the node is rejected by the store
        """
        node = await asyncio.to_thread(
            self.store.add_user_node,
            service,
            endpoint,
            strategy=strategy,
            name=name,
            probe_path=probe_path
        )
        probed = await self.scheduler.probe_node(node.id)
        await asyncio.to_thread(self.store.persist)
        return probed or node

    def remove_node(self, node_id: str) -> bool:
        return self.store.remove_node(node_id)

    def set_override(self, service: str, node_id: str) -> None:
        """
        Pin a service to a node.

        Raises:
            ValidationError: If the service is unknown or the node does not serve it
        """
        if service not in self.store.services:
            raise ValidationError(f"Unknown service '{service}'", field="service")
        node = self.store.get(node_id)
        if node is None or not node.serves(service):
            raise ValidationError(f"Node '{node_id}' does not serve '{service}'", field="node_id")
        self.preferences.set_override(service, node_id)
        logger.info("Service override set", extra={"service": service, "node_id": node_id})

    def clear_override(self, service: str) -> bool:
        return self.preferences.clear_override(service)

    async def refresh_nodes(self) -> RefreshReport:
        return await self.scheduler.refresh_nodes()

    async def health_sweep(self) -> SweepReport:
        return await self.scheduler.health_sweep()

    def status_board(self) -> Dict[str, Any]:
        """Per-service ranking of nodes with scores, plus scheduler state."""
        overrides = self.preferences.overrides()
        best = {}
        services: Dict[str, List[Dict[str, Any]]] = {}
        for service in self.store.services:
            selected = self.selector.select(service)
            best[service] = selected.id if selected else None
            services[service] = [
                {
                    "id": node.id,
                    "name": node.name,
                    "endpoint": node.endpoint,
                    "strategy": node.strategy,
                    "health": node.health.value,
                    "latency_ms": node.latency_ms,
                    "source": node.source.value,
                    "score": score,
                }
                for node, score in self.selector.rank(service)
            ]

        return {
            "services": services,
            "best": best,
            "overrides": overrides,
            "node_count": len(self.store),
            "sources": describe_sources(self.scheduler.sources),
            "scheduler": {
                "running": self.scheduler.running,
                "last_refresh": asdict(self.scheduler.last_refresh) if self.scheduler.last_refresh else None,
                "last_sweep": asdict(self.scheduler.last_sweep) if self.scheduler.last_sweep else None,
            },
        }

    async def start(self):
        await self.scheduler.start()

    async def stop(self):
        await self.scheduler.stop()
        await asyncio.to_thread(self.store.persist)
        await self.client.close()


def _builtin_nodes(config: RouterConfig) -> List[Node]:
    return [
        Node(
            id=entry.id,
            name=entry.name,
            endpoint=normalize_endpoint(entry.endpoint),
            services=frozenset(entry.services),
            strategy=entry.strategy,
            source=NodeSource.BUILTIN,
            probe_path=entry.probe_path or config.probe.default_path
        )
        for entry in config.nodes
    ]


def build_engine(
    config: RouterConfig,
    persistence: Optional[KeyValueStore] = None,
    client: Optional[NetworkProbeClient] = None
) -> RoutingEngine:
    """
    Construct a routing engine from configuration.

    Args:
        config: Validated router configuration
        persistence: Key-value store, defaults to the configured backend
        client: Network collaborator, defaults to an httpx-backed client

    Returns:
        RoutingEngine with builtin and persisted nodes loaded
    """
    persistence = persistence if persistence is not None else create_store(config.persistence)
    client = client or NetworkProbeClient(user_agent=config.probe.user_agent)

    classifier = ServiceClassifier(config.service_patterns)
    for pattern, owners in classifier.overlapping_patterns().items():
        logger.warning(
            "Host pattern claimed by several services, first declared wins",
            extra={"pattern": pattern, "services": owners}
        )

    scorer = NodeScorer(config.scoring)
    store = NodeStore(
        classifier.services,
        scorer=scorer,
        persistence=persistence,
        stability_window=config.scoring.stability_window
    )
    store.merge(_builtin_nodes(config))
    restored = store.load()

    selector = NodeSelector(store, scorer)
    preferences = UserPreferences(persistence)
    router = RequestRouter(classifier, selector, RewriteStrategyEngine(), store, preferences)
    prober = HealthProber(client, config.probe)
    sources = [create_source(entry, client) for entry in config.sources if entry.enabled]
    scheduler = RefreshScheduler(store, prober, sources, config.scheduler)

    logger.info(
        "Routing engine built",
        extra={
            "services": list(classifier.services),
            "nodes": len(store),
            "restored": restored,
            "sources": len(sources)
        }
    )
    return RoutingEngine(
        config=config,
        classifier=classifier,
        store=store,
        selector=selector,
        router=router,
        prober=prober,
        scheduler=scheduler,
        preferences=preferences,
        client=client
    )
