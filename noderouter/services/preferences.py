"""User preferences kept next to the node pool."""

from typing import Dict, Optional

from noderouter.services.persistence import KeyValueStore

CURRENT_NODES_KEY = "current_nodes"


class UserPreferences:
    """Per-service node overrides chosen by the user."""

    def __init__(self, persistence: KeyValueStore):
        self.persistence = persistence

    def overrides(self) -> Dict[str, str]:
        value = self.persistence.get(CURRENT_NODES_KEY, {})
        return dict(value) if isinstance(value, dict) else {}

    def get_override(self, service: str) -> Optional[str]:
        return self.overrides().get(service)

    def set_override(self, service: str, node_id: str) -> None:
        current = self.overrides()
        current[service] = node_id
        self.persistence.set(CURRENT_NODES_KEY, current)

    def clear_override(self, service: str) -> bool:
        current = self.overrides()
        if service not in current:
            return False
        del current[service]
        self.persistence.set(CURRENT_NODES_KEY, current)
        return True
