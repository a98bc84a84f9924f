"""Integration tests for the routing engine."""

import json
import threading
from unittest.mock import AsyncMock

import pytest

from noderouter.config import NodeSourceConfig
from noderouter.core.exceptions import ValidationError
from noderouter.gateway.proxy.http_client import ProbeResult
from noderouter.models.node import NodeHealth, NodeSource
from noderouter.services.engine import build_engine
from noderouter.services.persistence import InMemoryKeyValueStore, JsonFileKeyValueStore


class TestBuildEngine:
    """Test cases for build_engine."""

    def test_builtin_nodes_are_seeded(self, engine):
        node = engine.store.get("ghproxy")
        assert node.source == NodeSource.BUILTIN
        assert node.strategy == "proxy"
        assert node.health == NodeHealth.UNKNOWN
        assert len(engine.store) == 2

    def test_overlapping_patterns_are_logged(self, router_config, fake_client, capture_logs):
        router_config.services[1].patterns.append("github.com")

        build_engine(router_config, persistence=InMemoryKeyValueStore(), client=fake_client)

        assert any("first declared wins" in record.getMessage() for record in capture_logs)

    def test_disabled_sources_are_not_created(self, router_config, fake_client):
        router_config.sources = [
            NodeSourceConfig(name="on", url="https://lists.example.net/a.json"),
            NodeSourceConfig(name="off", url="https://lists.example.net/b.json", enabled=False),
        ]
        engine = build_engine(router_config, persistence=InMemoryKeyValueStore(), client=fake_client)
        assert [source.name for source in engine.scheduler.sources] == ["on"]


class TestEngineLifecycle:
    """End-to-end flows through the engine."""

    @pytest.mark.asyncio
    async def test_user_nodes_and_health_survive_restart(self, router_config, fake_client, temp_directory):
        path = temp_directory / "state.json"
        engine = build_engine(router_config, persistence=JsonFileKeyValueStore(path), client=fake_client)
        node = await engine.add_user_node("code-hosting", "https://mine.example.net")
        await engine.health_sweep()
        engine.set_override("code-hosting", node.id)
        await engine.stop()

        restarted = build_engine(router_config, persistence=JsonFileKeyValueStore(path), client=fake_client)

        assert restarted.store.get(node.id).source == NodeSource.USER_ADDED
        assert restarted.store.get("ghproxy").health == NodeHealth.HEALTHY
        assert restarted.preferences.get_override("code-hosting") == node.id
        assert restarted.explain("https://github.com/a").node_id == node.id
        assert "custom_nodes" in json.loads(path.read_text())
        fake_client.close.assert_awaited()

    @pytest.mark.asyncio
    async def test_refresh_from_file_source(self, router_config, fake_client, temp_directory):
        nodes_file = temp_directory / "nodes.json"
        nodes_file.write_text(json.dumps({"nodes": [
            {"id": "r1", "endpoint": "https://r1.example.net", "services": ["code-hosting"]},
            {"id": "r2", "endpoint": "https://r2.example.net", "services": ["unknown-service"]},
        ]}))
        router_config.sources = [NodeSourceConfig(name="local", type="file", path=str(nodes_file))]
        engine = build_engine(router_config, persistence=InMemoryKeyValueStore(), client=fake_client)

        report = await engine.refresh_nodes()

        assert report.succeeded == ["local"]
        assert report.nodes_received == 2
        assert engine.store.get("r1").origin == "local"
        assert engine.store.get("r2") is None

        nodes_file.write_text(json.dumps({"nodes": []}))
        report = await engine.refresh_nodes()

        assert report.removed == 1
        assert engine.store.get("r1") is None
        assert engine.store.get("ghproxy") is not None

    @pytest.mark.asyncio
    async def test_dead_node_is_routed_around(self, engine, fake_client):
        await engine.add_user_node("code-hosting", "https://mine.example.net")

        async def probe(method, url, timeout):
            if "ghproxy" in url:
                return ProbeResult(url=url, status_code=502, latency_ms=3.0)
            return ProbeResult(url=url, status_code=200, latency_ms=400.0)

        fake_client.probe = AsyncMock(side_effect=probe)
        await engine.health_sweep()

        assert engine.store.get("ghproxy").health == NodeHealth.DEAD
        assert engine.resolve("https://github.com/a") == "https://mine.example.net/a"

    @pytest.mark.asyncio
    async def test_add_user_node_rejects_invalid_endpoint(self, engine):
        with pytest.raises(ValidationError):
            await engine.add_user_node("code-hosting", "javascript:alert(1)")
        assert len(engine.store) == 2

    @pytest.mark.asyncio
    async def test_add_user_node_rejects_unusable_probe_path(self, engine, fake_client):
        with pytest.raises(ValidationError) as exc_info:
            await engine.add_user_node("code-hosting", "https://mine.example.net", probe_path="/ping\x00")
        assert exc_info.value.field == "probe_path"
        assert len(engine.store) == 2
        fake_client.probe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_add_user_node_persists_off_the_event_loop(self, engine, monkeypatch):
        loop_thread = threading.get_ident()
        persist_threads = []
        original_persist = engine.store.persist

        def recording_persist():
            persist_threads.append(threading.get_ident())
            original_persist()

        monkeypatch.setattr(engine.store, "persist", recording_persist)

        await engine.add_user_node("code-hosting", "https://mine.example.net")
        await engine.health_sweep()

        assert persist_threads
        assert loop_thread not in persist_threads

    def test_set_override_validation(self, engine):
        with pytest.raises(ValidationError):
            engine.set_override("nope", "ghproxy")
        with pytest.raises(ValidationError):
            engine.set_override("registry", "ghproxy")
        engine.set_override("registry", "mirror-hub")
        assert engine.clear_override("registry") is True
