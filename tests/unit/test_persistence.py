"""Unit tests for key-value persistence and user preferences."""

import json

import pytest

from noderouter.config import PersistenceConfig
from noderouter.services.persistence import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    create_store
)
from noderouter.services.preferences import CURRENT_NODES_KEY, UserPreferences


class TestInMemoryKeyValueStore:
    """Test cases for InMemoryKeyValueStore."""

    def test_get_default(self):
        store = InMemoryKeyValueStore()
        assert store.get("missing") is None
        assert store.get("missing", []) == []

    def test_values_are_copied(self):
        store = InMemoryKeyValueStore()
        value = {"nodes": ["a"]}
        store.set("key", value)
        value["nodes"].append("b")

        stored = store.get("key")
        stored["nodes"].append("c")

        assert store.get("key") == {"nodes": ["a"]}


class TestJsonFileKeyValueStore:
    """Test cases for JsonFileKeyValueStore."""

    def test_set_writes_document(self, temp_directory):
        path = temp_directory / "data" / "state.json"
        store = JsonFileKeyValueStore(path)

        store.set("nodes", [{"id": "a"}])

        assert json.loads(path.read_text()) == {"nodes": [{"id": "a"}]}
        assert JsonFileKeyValueStore(path).get("nodes") == [{"id": "a"}]
        assert list(path.parent.iterdir()) == [path]

    def test_unreadable_file_starts_empty(self, temp_directory):
        path = temp_directory / "state.json"
        path.write_text("{broken")

        store = JsonFileKeyValueStore(path)

        assert store.get("nodes", []) == []
        store.set("nodes", [])
        assert json.loads(path.read_text()) == {"nodes": []}

    def test_non_object_document_starts_empty(self, temp_directory):
        path = temp_directory / "state.json"
        path.write_text("[1, 2, 3]")
        assert JsonFileKeyValueStore(path).get("nodes") is None


class TestCreateStore:
    """Test cases for create_store."""

    def test_memory_backend(self):
        assert isinstance(create_store(PersistenceConfig(backend="memory")), InMemoryKeyValueStore)

    def test_file_backend(self, temp_directory):
        store = create_store(PersistenceConfig(backend="file", path=str(temp_directory / "s.json")))
        assert isinstance(store, JsonFileKeyValueStore)

    def test_unknown_backend_is_rejected(self):
        with pytest.raises(ValueError):
            PersistenceConfig(backend="redis")


class TestUserPreferences:
    """Test cases for per-service overrides."""

    def test_set_get_clear_override(self):
        persistence = InMemoryKeyValueStore()
        preferences = UserPreferences(persistence)

        preferences.set_override("code-hosting", "ghproxy")

        assert preferences.get_override("code-hosting") == "ghproxy"
        assert persistence.get(CURRENT_NODES_KEY) == {"code-hosting": "ghproxy"}
        assert preferences.clear_override("code-hosting") is True
        assert preferences.clear_override("code-hosting") is False
        assert preferences.get_override("code-hosting") is None

    def test_corrupt_value_reads_as_empty(self):
        preferences = UserPreferences(InMemoryKeyValueStore({CURRENT_NODES_KEY: "oops"}))
        assert preferences.overrides() == {}
