"""Integration tests for the shipped configuration files."""

from pathlib import Path

import pytest

from noderouter.config import ConfigLoader
from noderouter.gateway.routing.classifier import ServiceClassifier
from noderouter.services.engine import build_engine
from noderouter.services.persistence import InMemoryKeyValueStore

CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


@pytest.fixture
def loader():
    return ConfigLoader(CONFIG_DIR)


class TestShippedConfig:
    """The configuration under config/ loads and builds an engine."""

    def test_base_config_loads(self, loader):
        config = loader.load_config("development")

        assert config.service_names == ["code-hosting", "game-platform", "registry", "translate"]
        assert {node.id for node in config.nodes} >= {"ghproxy", "dockerproxy"}
        assert config.persistence.backend == "file"

    def test_test_overlay(self, loader):
        config = loader.load_config("test")
        assert config.scheduler.enabled is False
        assert config.persistence.backend == "memory"

    def test_production_overlay(self, loader):
        config = loader.load_config("production")
        assert config.server.host == "0.0.0.0"
        assert config.server.log_format == "json"
        assert config.scheduler.probe_retries == 1

    def test_shipped_services_classify(self, loader):
        classifier = ServiceClassifier(loader.load_config("test").service_patterns)

        assert classifier.classify("github.com") == "code-hosting"
        assert classifier.classify("store.steampowered.com") == "game-platform"
        assert classifier.classify("registry-1.docker.io") == "registry"
        assert classifier.classify("translate.googleapis.com") == "translate"
        assert classifier.overlapping_patterns() == {}

    def test_shipped_config_builds_engine(self, loader, fake_client):
        engine = build_engine(loader.load_config("test"), persistence=InMemoryKeyValueStore(), client=fake_client)
        assert engine.resolve("https://github.com/user/repo").startswith("https://")
        assert engine.resolve("https://example.org/") == "https://example.org/"
