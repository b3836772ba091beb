"""Frozen dataclasses for configuration and YAML loader with env-var interpolation."""

from __future__ import annotations

import os
import re
import types
import typing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")

DEFAULT_POLLING_INTERVAL_MS = 5000
DEFAULT_API_BASE_URL = "https://api.digitalocean.com/v2"

REQUIRED_TOPOLOGY_KEYS = ("node_basename", "tag_name", "token")


def _interpolate_env(value: str) -> str:
    """Replace ${ENV_VAR} placeholders with environment variable values."""

    def _replace(match: re.Match) -> str:
        env_key = match.group(1)
        env_val = os.environ.get(env_key)
        if env_val is None:
            raise ConfigError(f"Environment variable '{env_key}' is not set")
        return env_val

    return _ENV_PATTERN.sub(_replace, value)


def _walk_and_interpolate(obj: Any) -> Any:
    """Recursively interpolate env vars in strings throughout a nested structure."""
    if isinstance(obj, str):
        return _interpolate_env(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_interpolate(v) for v in obj]
    return obj


@dataclass(frozen=True)
class TopologyConfig:
    """One membership group: the droplets carrying ``tag_name`` form the cluster."""

    name: str = ""
    node_basename: str = ""
    tag_name: str = ""
    token: str = ""
    polling_interval: int = DEFAULT_POLLING_INTERVAL_MS  # milliseconds
    api_base_url: str = DEFAULT_API_BASE_URL
    timeout: int = 10
    per_page: int = 200
    max_pages: int = 50

    @property
    def polling_interval_seconds(self) -> float:
        return self.polling_interval / 1000.0


@dataclass(frozen=True)
class ConnectionConfig:
    base_url: str = "http://localhost:4369"
    username: str = ""
    password: str = ""
    timeout: int = 10
    verify_ssl: bool = True
    self_name: str = ""  # this node's own peer name, never connected to itself


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "json"  # "json" or "text"
    levels: dict[str, str] = field(default_factory=dict)  # logger name -> level, e.g. droplet_cluster.connection: DEBUG


@dataclass(frozen=True)
class AppConfig:
    topologies: dict[str, TopologyConfig] = field(default_factory=dict)
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _get_dataclass_type(ft: Any) -> type | None:
    """Return the underlying dataclass type from a type annotation (handles Optional/X|None)."""
    if isinstance(ft, type) and hasattr(ft, "__dataclass_fields__"):
        return ft
    if isinstance(ft, types.UnionType):
        args = [a for a in ft.__args__ if a is not type(None)]
        if len(args) == 1 and isinstance(args[0], type) and hasattr(args[0], "__dataclass_fields__"):
            return args[0]
    origin = getattr(ft, "__origin__", None)
    if origin is typing.Union:
        args = [a for a in ft.__args__ if a is not type(None)]
        if len(args) == 1 and isinstance(args[0], type) and hasattr(args[0], "__dataclass_fields__"):
            return args[0]
    return None


def _build_nested(cls: type, data: dict[str, Any]) -> Any:
    """Construct a frozen dataclass, recursively building nested dataclass fields."""
    if not isinstance(data, dict):
        return data
    field_types = {f.name: f.type for f in cls.__dataclass_fields__.values()}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in field_types:
            continue
        ft = field_types[key]
        # Resolve string annotations to actual types in the module scope
        if isinstance(ft, str):
            ft = eval(ft, globals(), {cls.__name__: cls})  # noqa: S307
        dc_type = _get_dataclass_type(ft)
        if dc_type is not None and isinstance(value, dict):
            kwargs[key] = _build_nested(dc_type, value)
        else:
            kwargs[key] = value
    return cls(**kwargs)


def _build_topologies(raw: Any) -> dict[str, TopologyConfig]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("'topologies' must be a mapping of topology name to settings")

    topologies: dict[str, TopologyConfig] = {}
    for name, settings in raw.items():
        if not isinstance(settings, dict):
            raise ConfigError(f"topology {name}: settings must be a mapping")
        topologies[str(name)] = _build_nested(TopologyConfig, {**settings, "name": str(name)})
    return topologies


def load_config(path: str | Path) -> AppConfig:
    """Load and validate configuration from a YAML file."""
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ConfigError("Configuration file must be a YAML mapping")

    raw = _walk_and_interpolate(raw)
    topologies = _build_topologies(raw.pop("topologies", None))
    config = _build_nested(AppConfig, raw)
    config = AppConfig(topologies=topologies, connection=config.connection, logging=config.logging)
    validate(config)
    return config


def validate(config: AppConfig) -> None:
    """Validate configuration values. Raises ConfigError on the first problem found."""
    if not config.topologies:
        raise ConfigError("No topologies configured. Add at least one entry under 'topologies'.")

    for name, topology in config.topologies.items():
        validate_topology(topology, name)

    if config.logging.format not in ("json", "text"):
        raise ConfigError("logging.format must be 'json' or 'text'")

    if not isinstance(config.logging.levels, dict):
        raise ConfigError("logging.levels must be a mapping of logger name to level")

    if not _positive_int(config.connection.timeout):
        raise ConfigError(f"connection.timeout must be a positive integer, got {config.connection.timeout!r}")


def validate_topology(topology: TopologyConfig, name: str | None = None) -> None:
    name = name or topology.name
    for key in REQUIRED_TOPOLOGY_KEYS:
        value = getattr(topology, key)
        if value == "" or value is None:
            raise ConfigError(f"topology {name}: missing '{key}'")
        if not isinstance(value, str):
            raise ConfigError(f"topology {name}: invalid option for '{key}': {value!r}")

    if not _positive_int(topology.polling_interval):
        raise ConfigError(
            f"topology {name}: polling_interval must be a positive integer of milliseconds, "
            f"got {topology.polling_interval!r}"
        )

    for key in ("per_page", "max_pages", "timeout"):
        value = getattr(topology, key)
        if not _positive_int(value):
            raise ConfigError(f"topology {name}: {key} must be a positive integer, got {value!r}")


def _positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0
