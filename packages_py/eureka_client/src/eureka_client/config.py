"""Layered configuration for the eureka client.

Layers are merged in order (defaults < base YAML file < environment YAML
file < explicit overrides) and validated once into a frozen
``EurekaClientConfig``.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "eureka-client"
DEFAULT_ENV = "development"


def to_camel(name: str) -> str:
    """snake_case -> camelCase; camelCase input is returned unchanged."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``. Non-dict values replace."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class EurekaSettings(_WireModel):
    """Registry server location and client behaviour. Durations are seconds."""

    host: Optional[str] = None
    port: Optional[int] = None
    service_urls: Optional[Dict[str, List[str]]] = None
    service_path: str = "/eureka/v2/apps/"
    ssl: bool = False

    # Lease and fetch timers
    heartbeat_interval: float = 30.0
    registry_fetch_interval: float = 30.0
    fetch_registry: bool = True
    should_use_delta: bool = False
    wait_for_registry: bool = False
    registry_wait_interval: float = 2.0
    filter_up_instances: bool = True
    register_with_eureka: bool = True

    # Request pipeline
    max_retries: int = 3
    request_retry_delay: float = 0.5
    request_timeout: Optional[float] = None
    registration_warning_delay: float = 10.0

    # Server resolution
    use_dns: bool = False
    ec2_region: Optional[str] = None
    availability_zones: Optional[Dict[str, List[str]]] = None
    prefer_same_zone: bool = True
    cluster_refresh_interval: float = 300.0

    # Cloud metadata
    fetch_metadata: bool = True
    ecs_metadata: bool = False
    use_local_metadata: bool = False
    prefer_ip_address: bool = False

    @property
    def protocol(self) -> str:
        return "https" if self.ssl else "http"


class InstanceConfig(_WireModel):
    """The instance descriptor sent on registration. Unknown keys are kept verbatim."""

    model_config = ConfigDict(extra="allow")

    app: Optional[str] = None
    vip_address: Optional[str] = None
    port: Any = None
    data_center_info: Optional[Dict[str, Any]] = None
    host_name: Optional[str] = None
    ip_addr: Optional[str] = None
    instance_id: Optional[str] = None
    status: Optional[str] = None
    status_page_url: Optional[str] = None
    health_check_url: Optional[str] = None
    home_page_url: Optional[str] = None

    @property
    def availability_zone(self) -> Optional[str]:
        metadata = (self.data_center_info or {}).get("metadata") or {}
        return metadata.get("availability-zone")

    def to_descriptor(self) -> Dict[str, Any]:
        """Mutable wire-format copy of the descriptor."""
        return copy.deepcopy(self.model_dump(by_alias=True, exclude_none=True))


class EurekaClientConfig(BaseModel):
    """Root configuration: ``eureka`` settings plus the ``instance`` descriptor."""

    model_config = ConfigDict(frozen=True)

    eureka: EurekaSettings = Field(default_factory=EurekaSettings)
    instance: InstanceConfig = Field(default_factory=InstanceConfig)

    @model_validator(mode="after")
    def _check_required(self) -> "EurekaClientConfig":
        missing = []
        for key in ("app", "vip_address", "port", "data_center_info"):
            if not getattr(self.instance, key):
                missing.append(f"instance.{to_camel(key)}")
        if not self.eureka.service_urls:
            for key in ("host", "port"):
                if not getattr(self.eureka, key):
                    missing.append(f"eureka.{key}")
        if missing:
            raise ValueError(
                "Missing " + ", ".join(f'"{name}"' for name in missing) + " config value."
            )
        if self.eureka.use_dns and not self.eureka.ec2_region:
            raise ValueError(
                "EC2 region was undefined. "
                "eureka.ec2Region must be set to resolve Eureka using DNS records."
            )
        return self


def _normalize_layer(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Rewrite section keys to their camelCase wire names so layers merge cleanly."""
    layer: Dict[str, Any] = {}
    for section in ("eureka", "instance"):
        values = data.get(section)
        if values is None:
            continue
        if not isinstance(values, Mapping):
            raise ConfigurationError(f'Config section "{section}" must be a mapping')
        layer[section] = {to_camel(key): value for key, value in values.items()}
    return layer


class ConfigBuilder:
    """
    Accumulates configuration layers and validates them once.

    Example:
        config = (
            ConfigBuilder()
            .with_yaml_files(cwd="/etc/myservice")
            .with_overrides({"instance": {"app": "jqservice"}})
            .build()
        )
    """

    def __init__(self) -> None:
        self._layers: List[Dict[str, Any]] = []
        self.files_loaded: List[str] = []

    def with_file(self, path: str | Path) -> "ConfigBuilder":
        """Add a YAML file layer. Missing files are skipped."""
        path = Path(path)
        if not path.exists():
            logger.debug(f"No config file at {path}, skipping")
            return self
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error loading YAML configuration file: {path} {e}") from e
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"YAML configuration file must contain a mapping: {path}")
        self._layers.append(_normalize_layer(data))
        self.files_loaded.append(str(path))
        logger.debug(f"Loaded config layer from {path}")
        return self

    def with_yaml_files(
        self,
        cwd: Optional[str | Path] = None,
        filename: Optional[str] = None,
        env: Optional[str] = None,
    ) -> "ConfigBuilder":
        """Add ``{filename}.yml`` then ``{filename}-{env}.yml`` from ``cwd``."""
        base = Path(cwd) if cwd is not None else Path.cwd()
        name = filename or DEFAULT_FILENAME
        app_env = env or os.environ.get("APP_ENV", DEFAULT_ENV)
        self.with_file(base / f"{name}.yml")
        self.with_file(base / f"{name}-{app_env}.yml")
        return self

    def with_overrides(self, overrides: Optional[Mapping[str, Any]]) -> "ConfigBuilder":
        """Add an explicit override layer (highest precedence so far)."""
        if overrides:
            self._layers.append(_normalize_layer(overrides))
        return self

    def merged(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for layer in self._layers:
            result = deep_merge(result, layer)
        return result

    def build(self) -> EurekaClientConfig:
        """Merge all layers and validate. Raises ConfigurationError."""
        try:
            return EurekaClientConfig.model_validate(self.merged())
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e


def load_config(
    cwd: Optional[str | Path] = None,
    filename: Optional[str] = None,
    env: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> EurekaClientConfig:
    """
    Load configuration from YAML files and explicit overrides.

    Args:
        cwd: Directory holding the YAML files (default: current directory)
        filename: Base file name without extension (default: eureka-client)
        env: Environment name (default: APP_ENV env var or 'development')
        overrides: Explicit values, camelCase or snake_case keys

    Returns:
        The validated, immutable configuration
    """
    return (
        ConfigBuilder()
        .with_yaml_files(cwd=cwd, filename=filename, env=env)
        .with_overrides(overrides)
        .build()
    )
