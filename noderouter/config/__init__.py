import os
import re
from pathlib import Path
from typing import Dict, Any, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .logging import get_logger, setup_logging, StructuredLogger

logger = get_logger(__name__)


class ServerConfig(BaseModel):
    """Admin API server and logging settings."""
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "info"
    log_format: str = "text"
    log_file: Optional[str] = None
    access_log: bool = True


class ServiceConfig(BaseModel):
    """A logical service and the hosts that belong to it."""
    name: str
    description: str = ""
    patterns: List[str] = Field(default_factory=list)

    @field_validator("patterns")
    @classmethod
    def normalize_patterns(cls, value: List[str]) -> List[str]:
        return [pattern.strip().lower().rstrip(".") for pattern in value if pattern.strip()]


class NodeConfig(BaseModel):
    """A default node shipped with the configuration."""
    id: str
    name: str = ""
    endpoint: str
    services: List[str]
    strategy: str = "mirror"
    probe_path: Optional[str] = None


class NodeSourceConfig(BaseModel):
    """A remote or on-disk node list."""
    name: str
    type: str = "http"
    url: Optional[str] = None
    path: Optional[str] = None
    services: List[str] = Field(default_factory=list, description="Services assumed for bare endpoint entries")
    timeout_seconds: float = 10.0
    enabled: bool = True

    @model_validator(mode="after")
    def check_location(self) -> "NodeSourceConfig":
        if self.type == "http" and not self.url:
            raise ValueError(f"Node source {self.name} of type http needs a url")
        if self.type == "file" and not self.path:
            raise ValueError(f"Node source {self.name} of type file needs a path")
        if self.type not in ("http", "file"):
            raise ValueError(f"Node source {self.name} has unknown type {self.type}")
        return self


class ProbeConfig(BaseModel):
    """Health probe settings."""
    timeout_seconds: float = Field(default=5.0, gt=0)
    healthy_threshold_ms: float = Field(default=3000.0, gt=0)
    method: str = "HEAD"
    default_path: str = "/"
    max_status_code: int = 399
    user_agent: str = "noderouter-probe/1.0"


class ScoringConfig(BaseModel):
    """Node scoring weights."""
    speed_weight: float = Field(default=0.6, ge=0)
    stability_weight: float = Field(default=0.4, ge=0)
    neutral_score: float = Field(default=0.5, ge=0, le=1)
    reference_latency_ms: float = Field(default=1000.0, gt=0)
    stability_window: int = Field(default=20, ge=1)


class SchedulerConfig(BaseModel):
    """Background refresh and health sweep settings."""
    enabled: bool = True
    run_on_start: bool = True
    refresh_interval_seconds: float = Field(default=3600.0, gt=0)
    refresh_ceiling_seconds: float = Field(default=30.0, gt=0)
    sweep_interval_seconds: float = Field(default=300.0, gt=0)
    sweep_ceiling_seconds: float = Field(default=60.0, gt=0)
    sweep_concurrency: int = Field(default=8, ge=1)
    probe_retries: int = Field(default=0, ge=0)


class PersistenceConfig(BaseModel):
    """Where the node pool and user preferences are kept."""
    backend: str = "memory"
    path: str = "data/noderouter.json"

    @field_validator("backend")
    @classmethod
    def check_backend(cls, value: str) -> str:
        if value not in ("memory", "file"):
            raise ValueError(f"Unknown persistence backend {value}")
        return value


class RouterConfig(BaseModel):
    """Main node router configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    services: List[ServiceConfig] = Field(default_factory=list)
    nodes: List[NodeConfig] = Field(default_factory=list)
    sources: List[NodeSourceConfig] = Field(default_factory=list)

    # Raw configuration for complex nested structures
    raw_config: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_references(self) -> "RouterConfig":
        names = [service.name for service in self.services]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate service names: {duplicates}")

        known = set(names)
        for node in self.nodes:
            unknown = [service for service in node.services if service not in known]
            if unknown:
                raise ValueError(f"Node {node.id} references unknown services {unknown}")

        node_ids = [node.id for node in self.nodes]
        if len(node_ids) != len(set(node_ids)):
            raise ValueError("Default node ids must be unique")
        return self

    @property
    def service_names(self) -> List[str]:
        return [service.name for service in self.services]

    @property
    def service_patterns(self) -> Dict[str, List[str]]:
        """Service name to host patterns, in declaration order."""
        return {service.name: list(service.patterns) for service in self.services}


class ConfigLoader:
    """Configuration loader for YAML files with environment-specific overrides."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize the configuration loader.

        Args:
            config_dir: Directory containing configuration files.
                       Defaults to the config directory at the project root.
        """
        if config_dir is None:
            current_dir = Path(__file__).parent.parent.parent
            self.config_dir = current_dir / "config"
        else:
            self.config_dir = Path(config_dir)

    def load_config(self, environment: Optional[str] = None) -> RouterConfig:
        """Load configuration for the specified environment.

        Args:
            environment: Environment name (development, production, etc.).
                        If None, will try to detect from ENVIRONMENT variable.

        Returns:
            Loaded and validated configuration.
        """
        if environment is None:
            environment = os.getenv("ENVIRONMENT", "development")

        config_data = self._load_base_config()

        env_config = self._load_environment_config(environment)
        if env_config:
            config_data = self._merge_configs(config_data, env_config)

        config_data = self._substitute_env_vars(config_data)

        return self._create_router_config(config_data)

    def _load_base_config(self) -> Dict[str, Any]:
        """Load the base router configuration."""
        router_config_path = self.config_dir / "router.yaml"
        if router_config_path.exists():
            return self._load_yaml_file(router_config_path)
        return {}

    def _load_environment_config(self, environment: str) -> Optional[Dict[str, Any]]:
        """Load environment-specific configuration."""
        env_config_path = self.config_dir / f"{environment}.yaml"
        if env_config_path.exists():
            return self._load_yaml_file(env_config_path)
        return None

    def _load_yaml_file(self, file_path: Path) -> Dict[str, Any]:
        """Load and parse a YAML file."""
        try:
            with open(file_path, 'r', encoding='utf-8') as file:
                return yaml.safe_load(file) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config file {file_path}: {e}")
            return {}

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _substitute_env_vars(self, config: Any) -> Any:
        """Substitute environment variables in configuration values."""
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_string_env_vars(config)
        else:
            return config

    def _substitute_string_env_vars(self, value: str) -> str:
        """Substitute ${VAR_NAME} and ${VAR_NAME:default} in a string value."""
        def replace_env_var(match):
            var_spec = match.group(1)
            if ':' in var_spec:
                var_name, default_value = var_spec.split(':', 1)
                return os.getenv(var_name, default_value)
            else:
                return os.getenv(var_spec, match.group(0))

        return re.sub(r'\$\{([^}]+)\}', replace_env_var, value)

    def _create_router_config(self, config_data: Dict[str, Any]) -> RouterConfig:
        """Create a RouterConfig object from configuration data."""
        config = RouterConfig(
            server=ServerConfig(**config_data.get("server", {})),
            probe=ProbeConfig(**config_data.get("probe", {})),
            scoring=ScoringConfig(**config_data.get("scoring", {})),
            scheduler=SchedulerConfig(**config_data.get("scheduler", {})),
            persistence=PersistenceConfig(**config_data.get("persistence", {})),
            services=self._parse_services(config_data.get("services", {})),
            nodes=[NodeConfig(**node) for node in config_data.get("nodes", [])],
            sources=[NodeSourceConfig(**source) for source in config_data.get("sources", [])],
            raw_config=config_data
        )
        return config

    def _parse_services(self, services_data: Any) -> List[ServiceConfig]:
        """Accept either a name-keyed mapping or a list of service entries."""
        if isinstance(services_data, dict):
            services = []
            for name, body in services_data.items():
                body = body or {}
                if isinstance(body, list):
                    body = {"patterns": body}
                services.append(ServiceConfig(name=name, **body))
            return services
        return [ServiceConfig(**entry) for entry in services_data or []]


__all__ = [
    "ServerConfig",
    "ServiceConfig",
    "NodeConfig",
    "NodeSourceConfig",
    "ProbeConfig",
    "ScoringConfig",
    "SchedulerConfig",
    "PersistenceConfig",
    "RouterConfig",
    "ConfigLoader",
    "get_logger",
    "setup_logging",
    "StructuredLogger",
]
