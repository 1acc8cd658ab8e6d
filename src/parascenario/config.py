"""Orchestrator configuration management.

Handles the configuration consumed by a scenario run, stored in
~/.parascenario/config.yaml (or a file given with --config).
Supports environment variable overrides.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .shared.paths import CONFIG_FILE, DEFAULT_REPORT_DIR, DEFAULT_WORK_DIR, ensure_dirs

# Default values
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_SPAWN_STAGGER = 2.0
DEFAULT_PROCESS_TIMEOUT = 600.0
DEFAULT_DEVICE_TYPE = "web"
DEFAULT_SCENARIO_COMMAND = "behave {feature} --tags={tag}"

DEVICE_TYPES = ("web", "android")

# Environment variable mappings
ENV_VARS = {
    "poll_interval": "PARASCENARIO_POLL_INTERVAL",
    "spawn_stagger": "PARASCENARIO_SPAWN_STAGGER",
    "process_timeout": "PARASCENARIO_PROCESS_TIMEOUT",
    "work_dir": "PARASCENARIO_WORK_DIR",
    "report_dir": "PARASCENARIO_REPORT_DIR",
    "device_type": "PARASCENARIO_DEVICE_TYPE",
    "failed_is_terminal": "PARASCENARIO_FAILED_IS_TERMINAL",
    "scenario_command": "PARASCENARIO_SCENARIO_COMMAND",
}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# Converters from raw (file/env) values to field types
_CONVERTERS = {
    "poll_interval": float,
    "spawn_stagger": float,
    "process_timeout": float,
    "work_dir": Path,
    "report_dir": Path,
    "device_type": str,
    "failed_is_terminal": _to_bool,
    "scenario_command": str,
}


@dataclass
class OrchestratorConfig:
    """Configuration of a scenario run.

    Times are in seconds.
    """

    poll_interval: float = DEFAULT_POLL_INTERVAL
    spawn_stagger: float = DEFAULT_SPAWN_STAGGER
    process_timeout: float = DEFAULT_PROCESS_TIMEOUT
    work_dir: Path = DEFAULT_WORK_DIR
    report_dir: Path = DEFAULT_REPORT_DIR
    device_type: str = DEFAULT_DEVICE_TYPE
    failed_is_terminal: bool = True
    scenario_command: str = DEFAULT_SCENARIO_COMMAND

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict, repr=False)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def to_dict(self) -> dict[str, Any]:
        """Config values as plain YAML-friendly types."""
        result: dict[str, Any] = {}
        for key in config_keys():
            value = getattr(self, key)
            result[key] = str(value) if isinstance(value, Path) else value
        return result


def config_keys() -> list[str]:
    """Names of the user-settable config keys."""
    return [f.name for f in fields(OrchestratorConfig) if not f.name.startswith("_")]


def get_config_path() -> Path:
    """Get the default config file path.

    Returns:
        Path to ~/.parascenario/config.yaml
    """
    return CONFIG_FILE


def _apply(config: OrchestratorConfig, key: str, raw: Any) -> None:
    value = _CONVERTERS[key](raw)
    if key == "device_type" and value not in DEVICE_TYPES:
        raise ValueError(f"Unsupported device type: {value}. Expected one of {DEVICE_TYPES}")
    setattr(config, key, value)


def load_config(path: str | Path | None = None) -> OrchestratorConfig:
    """Load orchestrator configuration.

    Precedence (highest to lowest):
    1. Environment variables
    2. Config file (path, or ~/.parascenario/config.yaml)
    3. Defaults

    Args:
        path: Explicit config file path

    Returns:
        OrchestratorConfig with values and sources

    Raises:
        ValueError: If a value cannot be converted to its field type
    """
    config = OrchestratorConfig()
    sources: dict[str, str] = {key: "default" for key in config_keys()}

    config_path = Path(path) if path else get_config_path()
    if config_path.exists():
        with open(config_path) as f:
            file_config = yaml.safe_load(f) or {}

        for key in config_keys():
            if key in file_config:
                _apply(config, key, file_config[key])
                sources[key] = "config file"

    for key, env_var in ENV_VARS.items():
        if os.environ.get(env_var):
            _apply(config, key, os.environ[env_var])
            sources[key] = "environment"

    config._sources = sources
    return config


def save_config(key: str, value: Any, path: str | Path | None = None) -> None:
    """Save a config value to the config file.

    Args:
        key: Config key
        value: Value to save (converted to the key's type first)
        path: Config file path (default: ~/.parascenario/config.yaml)

    Raises:
        KeyError: If key is not a config key
    """
    if key not in config_keys():
        raise KeyError(key)

    candidate = OrchestratorConfig()
    _apply(candidate, key, value)
    value = candidate.to_dict()[key]

    config_path = Path(path) if path else get_config_path()

    existing: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            existing = yaml.safe_load(f) or {}

    existing[key] = value

    if path is None:
        ensure_dirs()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        yaml.safe_dump(existing, f, default_flow_style=False)


def unset_config(key: str, path: str | Path | None = None) -> bool:
    """Remove a config value from the config file.

    Args:
        key: Config key to remove
        path: Config file path (default: ~/.parascenario/config.yaml)

    Returns:
        True if key was removed, False if not found
    """
    config_path = Path(path) if path else get_config_path()
    if not config_path.exists():
        return False

    with open(config_path) as f:
        existing = yaml.safe_load(f) or {}

    if key not in existing:
        return False

    del existing[key]

    with open(config_path, "w") as f:
        yaml.safe_dump(existing, f, default_flow_style=False)

    return True
