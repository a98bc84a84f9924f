"""
Key-value persistence for the node pool and user preferences.

The router only needs "get with default" and "set" on string keys; values
are plain JSON-compatible structures.
"""

import copy
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict

from noderouter.config import PersistenceConfig, get_logger

logger = get_logger(__name__)


class KeyValueStore:
    """Abstract base class for persistence backends."""

    def get(self, key: str, default: Any = None) -> Any:
        """
        Read a value.

        Args:
            key: Key name
            default: Value returned when the key is missing

        Returns:
            Stored value or default
        """
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        """
        Store a value, replacing any previous one.

        Args:
            key: Key name
            value: JSON-compatible value
        """
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store, used in tests and when persistence is disabled."""

    def __init__(self, initial: Dict[str, Any] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)


class JsonFileKeyValueStore(KeyValueStore):
    """Store backed by a single JSON document on disk."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as file:
                data = json.load(file)
        except (OSError, ValueError) as e:
            logger.warning(
                "Persistence file unreadable, starting empty",
                extra={"path": str(self.path), "error": str(e)}
            )
            return {}
        if not isinstance(data, dict):
            logger.warning("Persistence file is not a JSON object, starting empty", extra={"path": str(self.path)})
            return {}
        return data

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)
            self._write()

    def _write(self) -> None:
        """Write the whole document, replacing the file atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".noderouter-", suffix=".json", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file:
                json.dump(self._data, file, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


def create_store(config: PersistenceConfig) -> KeyValueStore:
    """Create the persistence backend described by the configuration."""
    if config.backend == "file":
        return JsonFileKeyValueStore(Path(config.path))
    return InMemoryKeyValueStore()
