"""
Configuration for xmlgraph.

Layered, lowest precedence first:
1. Defaults (this file)
2. Config file ($XDG_CONFIG_HOME/xmlgraph/config.toml or ~/.config/xmlgraph/config.toml)
3. Environment variables (XMLGRAPH_*)
4. CLI flags (applied by the CLI on top of the loaded config)
"""
from __future__ import annotations

import math
import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, Optional, Tuple


class ConfigError(ValueError):
    code = "E_CONFIG"


@dataclass
class ViewConfig:
    """Viewport size shared by both views."""
    width: float = 800.0
    height: float = 600.0


@dataclass
class ForceConfig:
    link_distance: float = 100.0
    charge_strength: float = -200.0
    charge_distance_min: float = 1.0
    center_strength: float = 1.0
    collide_strength: float = 1.0
    alpha: float = 1.0
    alpha_min: float = 0.001
    alpha_decay: float = 1.0 - 0.001 ** (1.0 / 300.0)
    alpha_target: float = 0.0
    drag_alpha_target: float = 0.3
    velocity_decay: float = 0.4
    radius_root: float = 25.0
    radius_container: float = 20.0
    radius_other: float = 18.0
    zoom_min: float = 0.1
    zoom_max: float = 8.0


@dataclass
class TreeConfig:
    dx: float = 25.0  # spacing between siblings (vertical)
    dy: Optional[float] = None  # spacing between depths; defaults to width / 4
    duration_ms: float = 250.0
    slow_duration_ms: float = 2500.0
    zoom_min: float = 0.1
    zoom_max: float = 3.0


@dataclass
class Config:
    view: ViewConfig = field(default_factory=ViewConfig)
    force: ForceConfig = field(default_factory=ForceConfig)
    tree: TreeConfig = field(default_factory=TreeConfig)
    debug: bool = False


def get_config_path() -> Path:
    """Get config file path, respecting XDG."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "xmlgraph" / "config.toml"
    return Path.home() / ".config" / "xmlgraph" / "config.toml"


def load_config(path: Optional[Path] = None) -> Config:
    """Load defaults, then the config file if present, then env overrides."""
    config = Config()
    path = path or get_config_path()

    if path.exists():
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ConfigError(f"failed to read config file {path}: {exc}") from exc
        _apply_toml(config, data)

    _apply_env(config)
    return config


def _apply_toml(config: Config, data: dict) -> None:
    for section_name in ("view", "force", "tree"):
        values = data.get(section_name)
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ConfigError(f"[{section_name}] must be a table")
        section = getattr(config, section_name)
        known = {f.name for f in fields(section)}
        for key, value in values.items():
            if key not in known:
                raise ConfigError(f"unknown setting {section_name}.{key}")
            setattr(section, key, _coerce(f"{section_name}.{key}", value))
    if "debug" in data:
        config.debug = bool(data["debug"])


_ENV_MAP: Dict[str, Tuple[str, str]] = {
    "XMLGRAPH_WIDTH": ("view", "width"),
    "XMLGRAPH_HEIGHT": ("view", "height"),
    "XMLGRAPH_LINK_DISTANCE": ("force", "link_distance"),
    "XMLGRAPH_CHARGE": ("force", "charge_strength"),
    "XMLGRAPH_VELOCITY_DECAY": ("force", "velocity_decay"),
    "XMLGRAPH_TREE_DX": ("tree", "dx"),
    "XMLGRAPH_TREE_DY": ("tree", "dy"),
}


def _apply_env(config: Config) -> None:
    for env_key, (section, attr) in _ENV_MAP.items():
        val = os.environ.get(env_key)
        if val is None:
            continue
        setattr(getattr(config, section), attr, _coerce(env_key, val))
    debug = os.environ.get("XMLGRAPH_DEBUG")
    if debug is not None:
        config.debug = debug.lower() in ("true", "1", "yes")


def _coerce(name: str, value: object) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc
    if not math.isfinite(number):
        raise ConfigError(f"{name} must be finite, got {value!r}")
    return number


__all__ = [
    "Config",
    "ConfigError",
    "ForceConfig",
    "TreeConfig",
    "ViewConfig",
    "get_config_path",
    "load_config",
]
