"""Unit tests for node models."""

import pytest
from pydantic import ValidationError as ModelValidationError

from noderouter.models.node import (
    SOURCE_RANK, HealthSample, Node, NodeHealth, NodeSource, RoutingDecision
)
from tests.fixtures import make_node


class TestNode:
    """Test cases for the Node model."""

    def test_defaults(self):
        node = Node(id="a", endpoint="https://a.example.net")
        assert node.health == NodeHealth.UNKNOWN
        assert node.source == NodeSource.REMOTE_FETCHED
        assert node.latency_ms is None
        assert node.recent_probes == ()
        assert node.services == frozenset()

    def test_node_is_immutable(self):
        node = make_node("a")
        with pytest.raises(ModelValidationError):
            node.health = NodeHealth.DEAD

    @pytest.mark.parametrize("endpoint,probe_path,expected", [
        ("https://a.example.net", "/", "https://a.example.net/"),
        ("https://a.example.net/", "status", "https://a.example.net/status"),
        ("https://cdn.example.net/gh", "/health", "https://cdn.example.net/gh/health"),
    ])
    def test_probe_url(self, endpoint, probe_path, expected):
        assert make_node("a", endpoint=endpoint, probe_path=probe_path).probe_url == expected

    def test_serves(self):
        node = make_node("a", services=("code-hosting", "registry"))
        assert node.serves("registry")
        assert not node.serves("translate")

    def test_json_round_trip(self):
        node = make_node("a", health=NodeHealth.HEALTHY, latency_ms=12.5, recent_probes=(True, False))
        assert Node.model_validate(node.model_dump(mode="json")) == node

    def test_source_rank(self):
        ranked = sorted(NodeSource, key=SOURCE_RANK.get)
        assert ranked == [NodeSource.REMOTE_FETCHED, NodeSource.BUILTIN, NodeSource.USER_ADDED]


class TestHealthSampleAndDecision:
    """Test cases for HealthSample and RoutingDecision."""

    def test_sample_ok_means_measured(self):
        assert HealthSample(node_id="a", health=NodeHealth.DEGRADED, latency_ms=4000.0).ok
        assert not HealthSample(node_id="a", health=NodeHealth.DEAD).ok

    def test_sample_is_timestamped(self):
        assert HealthSample(node_id="a", health=NodeHealth.DEAD).checked_at.tzinfo is not None

    def test_decision_rewritten(self):
        assert RoutingDecision(original_url="u", final_url="v", reason="selected").rewritten
        assert not RoutingDecision(original_url="u", final_url="u", reason="unclassified").rewritten
