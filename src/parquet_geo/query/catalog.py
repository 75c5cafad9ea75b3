"""
Layer catalog: services and layers read from a YAML config file.

Reads config from the PARQUET_GEO_CONFIG env var or an explicit path.

Supports ${ENV_VAR} interpolation in YAML string values so that
secrets (e.g. S3 credentials) and dataset locations can be injected via
environment variables rather than hard-coded in the config file.
"""

import os
import re
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigurationError
from .models import LayerMetadata

_config = None

_ENV_RE = re.compile(r"\$\{(\w+)\}")

DEFAULT_CONFIG_PATH = "config/layers.yml"


class EngineSettings(BaseModel):
    """DuckDB connection settings."""

    extensions: list[str] = Field(default_factory=lambda: ["spatial", "httpfs"])
    threads: Optional[int] = None
    memory_limit: Optional[str] = None
    query_timeout: Optional[float] = 30.0
    settings: dict[str, Any] = Field(default_factory=dict)


class ServiceConfig(BaseModel):
    description: str = ""
    layers: list[LayerMetadata] = Field(default_factory=list)


class AppConfig(BaseModel):
    engine: EngineSettings = Field(default_factory=EngineSettings)
    services: dict[str, ServiceConfig] = Field(default_factory=dict)


def _resolve_env_vars(value):
    """Replace ${VAR} placeholders with environment variable values."""
    if isinstance(value, str):
        return _ENV_RE.sub(
            lambda m: os.environ.get(m.group(1), m.group(0)), value
        )
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(v) for v in value]
    return value


def load_config(path: Optional[str] = None) -> AppConfig:
    """Read and validate a config file."""
    config_path = path or os.environ.get("PARQUET_GEO_CONFIG", DEFAULT_CONFIG_PATH)
    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read config {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
    return parse_config(raw)


def parse_config(raw: dict) -> AppConfig:
    try:
        return AppConfig.model_validate(_resolve_env_vars(raw))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def get_config() -> AppConfig:
    """Singleton config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: AppConfig):
    """Override the config instance (used for testing)."""
    global _config
    _config = config


def reset_config():
    """Reset the singleton config (used for testing)."""
    global _config
    _config = None


def list_services() -> list[str]:
    return list(get_config().services)


def get_service(service_id: str) -> ServiceConfig:
    services = get_config().services
    if service_id not in services:
        raise KeyError(f"Unknown service: {service_id}")
    return services[service_id]


def list_layers(service_id: str) -> list[LayerMetadata]:
    return get_service(service_id).layers


def get_layer(service_id: str, layer_id: int) -> LayerMetadata:
    """Look up a layer by its 0-based index within a service."""
    layers = list_layers(service_id)
    if layer_id < 0 or layer_id >= len(layers):
        raise KeyError(f"Unknown layer {layer_id} in service {service_id}")
    return layers[layer_id]
