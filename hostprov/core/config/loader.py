"""
Configuration loader — reads hostprov.yml into a DesiredConfig.

Sources, highest precedence first: CLI overrides, the YAML file, model
defaults. The YAML may wrap everything under a ``hostprov`` key or be
flat. The file is optional; when none is found the defaults apply.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from hostprov.core.models.config import DesiredConfig

logger = logging.getLogger(__name__)

CONFIG_FILE = "hostprov.yml"


class ConfigError(Exception):
    """Raised when the configuration is invalid or an explicit file is missing."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for hostprov.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to hostprov.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def read_config_file(path: Path) -> dict[str, Any]:
    """Parse a config file into a plain mapping.

    Raises:
        ConfigError: If the file is missing, unreadable or not a mapping.
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    if "hostprov" in data:
        inner = data["hostprov"]
        if not isinstance(inner, dict):
            raise ConfigError(f"Expected a mapping under 'hostprov' in {path}")
        return dict(inner)
    return data


def apply_overrides(data: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Merge dotted-key overrides (``storage.backend``) into ``data``.

    ``None`` values mean "not given on the command line" and are ignored.
    """
    merged = dict(data)
    for dotted, value in overrides.items():
        if value is None:
            continue
        parts = dotted.split(".")
        target = merged
        for part in parts[:-1]:
            child = target.get(part)
            child = dict(child) if isinstance(child, dict) else {}
            target[part] = child
            target = child
        target[parts[-1]] = value
    return merged


def load_config(
    path: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    *,
    search: bool = True,
) -> DesiredConfig:
    """Load and validate the desired configuration.

    Args:
        path: Explicit config file. Must exist when given.
        overrides: Dotted-key values from the command line.
        search: Look for hostprov.yml upward from cwd when no path is given.

    Returns:
        Validated, frozen DesiredConfig.

    Raises:
        ConfigError: If the file or the merged values are invalid.
    """
    if path is None and search:
        path = find_config_file()

    data: dict[str, Any] = read_config_file(path) if path is not None else {}
    data = apply_overrides(data, overrides or {})

    try:
        config = DesiredConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_validation(e)) from e

    logger.info(
        "Loaded config: profile=%s hostname=%s%s",
        config.profile,
        config.hostname,
        f" (from {path})" if path else "",
    )
    return config


def _format_validation(error: ValidationError) -> str:
    """One line per problem, ``field: message``."""
    lines = ["Invalid configuration:"]
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "config"
        lines.append(f"  {loc}: {err.get('msg', '')}")
    return "\n".join(lines)
