"""Scan options and layered configuration.

Settings resolve with the following precedence (highest to lowest):
1. CLI argument
2. Environment variable (SPREADY_<KEY>)
3. ``config.yaml`` inside the state directory
4. Built-in default

Usage:
    from spready.config import build_options

    options = build_options({"checkpoint_interval": 1000}, state_dir=Path(".spready"))
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from spready.constants import (
    DEFAULT_CHECKPOINT_INTERVAL,
    DEFAULT_EXCLUDE_FOLDERS,
    DEFAULT_FOLDER_SAMPLE_SIZE,
    DEFAULT_LOW_MEMORY_BYTES,
    DEFAULT_MAX_ISSUES_IN_MEMORY,
    DEFAULT_MAX_WORKERS,
    DEFAULT_PATH_WARNING_PERCENT,
    DEFAULT_TOP_N,
    STATE_DIRNAME,
)
from spready.errors import InvalidSettingError

CONFIG_FILENAME = "config.yaml"

ALL_CHECKS: frozenset[str] = frozenset(
    {
        "path_length",
        "invalid_characters",
        "reserved_names",
        "blocked_file_types",
        "problematic_files",
        "file_size",
        "name_conflicts",
        "hidden_files",
    }
)

# Setting key -> expected type for coercion of env/YAML values
KNOWN_SETTINGS: dict[str, type] = {
    "resume": bool,
    "checkpoint_interval": int,
    "max_issues_in_memory": int,
    "destination": str,
    "destination_prefix_length": int,
    "path_warning_threshold_percent": int,
    "exclude_folders": tuple,
    "disabled_checks": tuple,
    "max_items": int,
    "workers": int,
    "timeout": float,
    "enumeration_log": Path,
    "low_memory_threshold_bytes": int,
    "top_n": int,
    "folder_sample_size": int,
}

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off"})


def _default_workers() -> int:
    return max(1, min(DEFAULT_MAX_WORKERS, os.cpu_count() or 1))


@dataclass(frozen=True)
class ScanOptions:
    """Control surface for one scan invocation."""

    resume: bool = False
    checkpoint_interval: int = DEFAULT_CHECKPOINT_INTERVAL
    max_issues_in_memory: int = DEFAULT_MAX_ISSUES_IN_MEMORY
    destination: str = ""
    destination_prefix_length: int | None = None
    path_warning_threshold_percent: int = DEFAULT_PATH_WARNING_PERCENT
    exclude_folders: tuple[str, ...] = DEFAULT_EXCLUDE_FOLDERS
    enabled_checks: frozenset[str] = ALL_CHECKS
    max_items: int = 0
    workers: int = field(default_factory=_default_workers)
    timeout: float | None = None
    state_dir: Path = Path(STATE_DIRNAME)
    enumeration_log: Path | None = None
    low_memory_threshold_bytes: int = DEFAULT_LOW_MEMORY_BYTES
    top_n: int = DEFAULT_TOP_N
    folder_sample_size: int = DEFAULT_FOLDER_SAMPLE_SIZE

    def __post_init__(self) -> None:
        """Validate options."""
        if self.checkpoint_interval < 1:
            raise ValueError("checkpoint_interval must be at least 1")
        if self.max_issues_in_memory < 0:
            raise ValueError("max_issues_in_memory cannot be negative")
        if not 1 <= self.path_warning_threshold_percent <= 100:
            raise ValueError("path_warning_threshold_percent must be between 1 and 100")
        if self.destination_prefix_length is not None and self.destination_prefix_length < 0:
            raise ValueError("destination_prefix_length cannot be negative")
        if self.max_items < 0:
            raise ValueError("max_items cannot be negative")
        if self.workers < 1:
            raise ValueError("workers must be at least 1")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.top_n < 1 or self.folder_sample_size < 0:
            raise ValueError("top_n must be positive and folder_sample_size non-negative")
        unknown = self.enabled_checks - ALL_CHECKS
        if unknown:
            raise ValueError(f"Unknown checks: {', '.join(sorted(unknown))}")

    def prefix_length(self) -> int:
        """Destination prefix length, derived from the destination when not given."""
        if self.destination_prefix_length is not None:
            return self.destination_prefix_length
        from spready.validation.rules import destination_length

        return destination_length(self.destination)


def get_config_path(state_dir: Path) -> Path:
    """Path to the config file inside a state directory."""
    return state_dir / CONFIG_FILENAME


def load_config(state_dir: Path) -> dict[str, Any]:
    """Load configuration from ``<state_dir>/config.yaml``.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    config_file = get_config_path(state_dir)
    if not config_file.exists():
        return {}

    content = config_file.read_text(encoding="utf-8")
    if not content.strip():
        return {}

    data = yaml.safe_load(content)
    if not isinstance(data, dict):
        return {}
    return data


def save_config(state_dir: Path, config: dict[str, Any]) -> None:
    """Save configuration to ``<state_dir>/config.yaml``, creating the directory."""
    state_dir.mkdir(parents=True, exist_ok=True)
    content = yaml.safe_dump(config, default_flow_style=False, sort_keys=False)
    get_config_path(state_dir).write_text(content, encoding="utf-8")


def _get_env_var_name(key: str) -> str:
    """Convert a setting key to its environment variable (SPREADY_<KEY>)."""
    return f"SPREADY_{key.upper()}"


def _coerce(key: str, value: Any) -> Any:
    """Convert an env/YAML value into the type a setting expects."""
    expected = KNOWN_SETTINGS.get(key)
    if expected is None or value is None:
        return value

    if expected is bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise InvalidSettingError(key, value, "a boolean")

    if expected is tuple:
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        if isinstance(value, (list, tuple)):
            return tuple(str(part) for part in value)
        raise InvalidSettingError(key, value, "a list or comma-separated string")

    try:
        return expected(value)
    except (TypeError, ValueError) as e:
        raise InvalidSettingError(key, value, expected.__name__) from e


def get_setting(
    key: str,
    cli_value: Any | None = None,
    state_dir: Path | None = None,
    config: dict[str, Any] | None = None,
) -> Any | None:
    """Resolve a setting with full precedence.

    Args:
        key: Setting key (e.g., "checkpoint_interval").
        cli_value: Value passed via CLI argument (highest precedence).
        state_dir: State directory holding config.yaml.
        config: Already-loaded config dict, to avoid re-reading the file.

    Returns:
        Resolved value, or None if not set at any level.
    """
    if cli_value is not None:
        return cli_value

    env_value = os.environ.get(_get_env_var_name(key))
    if env_value is not None:
        return _coerce(key, env_value)

    if config is None:
        config = load_config(state_dir) if state_dir is not None else {}
    if key in config:
        return _coerce(key, config[key])

    return None


def build_options(
    cli_values: dict[str, Any] | None = None,
    *,
    state_dir: Path | None = None,
) -> ScanOptions:
    """Build ScanOptions from CLI values, environment and config file.

    Settings that resolve to None keep their built-in defaults.
    ``disabled_checks`` is translated into ``enabled_checks``.

    Raises:
        InvalidSettingError: If an env or config value has the wrong type.
        ValueError: If the resolved options are inconsistent.
    """
    cli_values = dict(cli_values or {})
    resolved_state_dir = Path(state_dir) if state_dir is not None else Path(STATE_DIRNAME)
    config = load_config(resolved_state_dir)

    kwargs: dict[str, Any] = {"state_dir": resolved_state_dir}
    for key in KNOWN_SETTINGS:
        value = get_setting(key, cli_values.get(key), config=config)
        if value is None:
            continue
        if key == "disabled_checks":
            unknown = frozenset(value) - ALL_CHECKS
            if unknown:
                raise InvalidSettingError(key, sorted(unknown), f"one of {sorted(ALL_CHECKS)}")
            kwargs["enabled_checks"] = ALL_CHECKS - frozenset(value)
        elif key == "exclude_folders":
            kwargs[key] = tuple(value)
        else:
            kwargs[key] = value

    return ScanOptions(**kwargs)
