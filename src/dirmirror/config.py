"""Configuration loading utilities for the directory mirror."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml  # type: ignore

from .properties import DEFAULT_SEPARATOR
from .watcher import BACKENDS

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


@dataclass
class MirrorConfig:
    """Options describing which directory to mirror and how to watch it."""

    root_path: Path
    name: str = "filesystem"
    backend: str = "native"
    poll_interval: float = 1.0


@dataclass
class PropertiesConfig:
    """Optional key/value resource mounted next to the mirror."""

    name: str = "properties"
    separator: Optional[str] = DEFAULT_SEPARATOR
    values: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AppConfig:
    """Top-level configuration structure."""

    mirror: MirrorConfig
    properties: Optional[PropertiesConfig] = None


def load_config(path: Path) -> AppConfig:
    """Load and validate the YAML configuration file."""

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:  # pragma: no cover - logging helper
        raise ConfigError(f"Failed to parse YAML configuration: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    mirror_cfg = _parse_mirror_config(data.get("mirror"), config_path=path)
    properties_cfg = _parse_properties_config(data.get("properties"))
    return AppConfig(mirror=mirror_cfg, properties=properties_cfg)


def _parse_mirror_config(raw: Any, *, config_path: Path) -> MirrorConfig:
    if not isinstance(raw, dict):
        raise ConfigError("'mirror' section must be a mapping")

    root_path_raw = raw.get("root_path")
    if not isinstance(root_path_raw, str):
        raise ConfigError("mirror.root_path must be a string")

    root_path = Path(root_path_raw)
    if not root_path.is_absolute():
        root_path = (config_path.parent / root_path).absolute()

    name = _parse_name(raw.get("name", "filesystem"), field_name="mirror.name")

    backend = raw.get("backend", "native")
    if backend not in BACKENDS:
        raise ConfigError(f"mirror.backend must be one of: {', '.join(BACKENDS)}")

    poll_interval = raw.get("poll_interval", 1.0)
    try:
        poll_interval_val = float(poll_interval)
    except (TypeError, ValueError) as exc:
        raise ConfigError("mirror.poll_interval must be numeric") from exc
    if poll_interval_val <= 0:
        raise ConfigError("mirror.poll_interval must be positive")

    logger.info("Loaded mirror '%s' for %s (backend=%s)", name, root_path, backend)
    return MirrorConfig(
        root_path=root_path,
        name=name,
        backend=backend,
        poll_interval=poll_interval_val,
    )


def _parse_properties_config(raw: Any) -> Optional[PropertiesConfig]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ConfigError("'properties' section must be a mapping")

    name = _parse_name(raw.get("name", "properties"), field_name="properties.name")

    separator = raw.get("separator", DEFAULT_SEPARATOR)
    if separator is not None and (not isinstance(separator, str) or not separator):
        raise ConfigError("properties.separator must be a non-empty string or null")

    values = raw.get("values", {})
    if values is None:
        values = {}
    if not isinstance(values, dict):
        raise ConfigError("properties.values must be a mapping if provided")

    return PropertiesConfig(
        name=name,
        separator=separator,
        values={str(key): value for key, value in values.items()},
    )


def _parse_name(value: Any, *, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip("/"):
        raise ConfigError(f"{field_name} must be a non-empty string")
    if "/" in value.strip("/"):
        raise ConfigError(f"{field_name} must be a single path segment")
    return value.strip("/")
