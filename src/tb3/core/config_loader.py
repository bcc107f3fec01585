"""
YAML → typed runtime config loader.

Runtime timings default to the constants in config.py and can be overridden
per user from $TB3_HOME/config.yaml (default ~/.tb3/config.yaml):

    runtime:
      undo_window_seconds: 8
      auto_advance_delay_seconds: 2.0

Usage:
    from tb3.core.config_loader import load_runtime_config
    cfg = load_runtime_config()
    cfg.undo_window_seconds

If the user file exists but has parse errors, a warning is issued and the
file is ignored.
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from . import config

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML mapping; warn and return {} on any read/parse error."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        warnings.warn(f"tb3: ignoring unreadable YAML file {path} ({exc})", stacklevel=2)
        return {}
    return data if isinstance(data, dict) else {}


def deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (non-destructive to base)."""
    result = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(result.get(k), dict):
            result[k] = deep_merge(result[k], v)
        else:
            result[k] = v
    return result


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuntimeConfig:
    """Timing parameters for the live session runtime (seconds unless noted)."""

    undo_window_seconds: float = config.UNDO_WINDOW_SECONDS
    auto_advance_delay_seconds: float = config.AUTO_ADVANCE_DELAY_SECONDS
    early_finish_delay_seconds: float = config.EARLY_FINISH_DELAY_SECONDS
    stale_session_hours: float = config.STALE_SESSION_HOURS
    tick_interval_seconds: float = config.TICK_INTERVAL_SECONDS
    companion_debounce_seconds: float = config.COMPANION_DEBOUNCE_SECONDS
    rest_extension_seconds: int = config.REST_EXTENSION_SECONDS

    def __post_init__(self) -> None:
        for f in fields(self):
            if getattr(self, f.name) < 0:
                raise ValueError(f"{f.name} must be non-negative")


def get_data_dir() -> Path:
    """Return the TB3 data directory ($TB3_HOME or ~/.tb3)."""
    env = os.environ.get("TB3_HOME")
    if env:
        return Path(env).expanduser()
    home = Path(os.environ.get("HOME", "~")).expanduser()
    return home / ".tb3"


def get_user_config_path() -> Path | None:
    """Return the user config.yaml if it exists, else None."""
    p = get_data_dir() / "config.yaml"
    return p if p.exists() else None


def runtime_config_from_dict(raw: dict[str, Any]) -> RuntimeConfig:
    """
    Build a RuntimeConfig from the ``runtime`` section of a config mapping.

    Unknown keys and values of the wrong type are reported with a warning
    and skipped; the remaining keys still apply.
    """
    cfg = RuntimeConfig()
    section = raw.get("runtime", {})
    if not isinstance(section, dict):
        warnings.warn("tb3: 'runtime' config section must be a mapping", stacklevel=2)
        return cfg

    known = {f.name: f for f in fields(RuntimeConfig)}
    updates: dict[str, Any] = {}
    for key, value in section.items():
        if key not in known:
            warnings.warn(f"tb3: unknown runtime setting '{key}'", stacklevel=2)
            continue
        caster = int if key == "rest_extension_seconds" else float
        try:
            updates[key] = caster(value)
        except (TypeError, ValueError):
            warnings.warn(f"tb3: invalid value for '{key}': {value!r}", stacklevel=2)

    try:
        return replace(cfg, **updates)
    except ValueError as exc:
        warnings.warn(f"tb3: ignoring runtime overrides ({exc})", stacklevel=2)
        return cfg


def load_runtime_config(path: Path | None = None) -> RuntimeConfig:
    """
    Load runtime timings, merging user overrides over the defaults.

    Args:
        path: Explicit config file; defaults to the user config.yaml

    Returns:
        RuntimeConfig (defaults when no file is present)
    """
    if path is None:
        path = get_user_config_path()
    if path is None or not Path(path).exists():
        return RuntimeConfig()
    return runtime_config_from_dict(load_yaml_file(Path(path)))
