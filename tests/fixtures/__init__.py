"""Test fixtures for node router tests."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from noderouter.config import (
    NodeConfig, PersistenceConfig, RouterConfig, SchedulerConfig, ServiceConfig
)
from noderouter.gateway.proxy.http_client import NetworkProbeClient, ProbeResult
from noderouter.gateway.proxy.load_balancer import NodeScorer, NodeSelector
from noderouter.main import create_app
from noderouter.models.node import Node, NodeHealth, NodeSource
from noderouter.services.engine import build_engine
from noderouter.services.node_store import NodeStore
from noderouter.services.persistence import InMemoryKeyValueStore

SERVICE_PATTERNS = {
    "code-hosting": ["github.com", "raw.githubusercontent.com"],
    "registry": ["docker.io", "hub.docker.com"],
    "translate": ["translate.google.com"],
}

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_node(node_id: str, services=("code-hosting",), **overrides) -> Node:
    """Build a node with sensible defaults."""
    data = {
        "id": node_id,
        "name": node_id,
        "endpoint": f"https://{node_id}.example.net",
        "services": frozenset(services),
        "strategy": "mirror",
    }
    data.update(overrides)
    return Node(**data)


def at(seconds: int) -> datetime:
    """Timestamp a fixed number of seconds after the base time."""
    return BASE_TIME + timedelta(seconds=seconds)


@pytest.fixture
def service_patterns():
    return {name: list(patterns) for name, patterns in SERVICE_PATTERNS.items()}


@pytest.fixture
def scorer():
    return NodeScorer()


@pytest.fixture
def memory_store():
    """Empty in-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def node_store(scorer, memory_store):
    """Node store over the test services, persisting in memory."""
    return NodeStore(list(SERVICE_PATTERNS), scorer=scorer, persistence=memory_store)


@pytest.fixture
def selector(node_store, scorer):
    return NodeSelector(node_store, scorer)


@pytest.fixture
def sample_nodes():
    """A small pool with one node in each health state."""
    return [
        make_node("fast", health=NodeHealth.HEALTHY, latency_ms=80.0, recent_probes=(True, True)),
        make_node("slow", health=NodeHealth.DEGRADED, latency_ms=3500.0, recent_probes=(True, False)),
        make_node("gone", health=NodeHealth.DEAD, recent_probes=(False,)),
        make_node("fresh"),
        make_node("hub", services=("registry",), health=NodeHealth.HEALTHY, latency_ms=200.0),
    ]


@pytest.fixture
def fake_client():
    """Network collaborator that answers every probe with 200 in 120 ms."""
    client = MagicMock(spec=NetworkProbeClient)
    client.probe = AsyncMock(
        side_effect=lambda method, url, timeout: ProbeResult(url=url, status_code=200, latency_ms=120.0)
    )
    client.fetch_json = AsyncMock(return_value={"nodes": []})
    client.close = AsyncMock()
    return client


@pytest.fixture
def router_config():
    """Router configuration with background loops disabled."""
    return RouterConfig(
        services=[
            ServiceConfig(name=name, patterns=patterns)
            for name, patterns in SERVICE_PATTERNS.items()
        ],
        nodes=[
            NodeConfig(
                id="ghproxy",
                name="GHProxy",
                endpoint="https://ghproxy.example.net",
                services=["code-hosting"],
                strategy="proxy"
            ),
            NodeConfig(
                id="mirror-hub",
                endpoint="https://hub.mirror.example.net",
                services=["registry"],
                strategy="mirror"
            ),
        ],
        scheduler=SchedulerConfig(enabled=False, run_on_start=False),
        persistence=PersistenceConfig(backend="memory")
    )


@pytest.fixture
def engine(router_config, fake_client):
    """Routing engine over the test configuration and a fake network."""
    return build_engine(router_config, persistence=InMemoryKeyValueStore(), client=fake_client)


@pytest.fixture
def test_client(engine):
    """Test client for the admin API, running the app lifespan."""
    with TestClient(create_app(config=engine.config, engine=engine)) as client:
        yield client


__all__ = [
    "SERVICE_PATTERNS",
    "BASE_TIME",
    "make_node",
    "at",
    "service_patterns",
    "scorer",
    "memory_store",
    "node_store",
    "selector",
    "sample_nodes",
    "fake_client",
    "router_config",
    "engine",
    "test_client",
]
