"""Configuration loading."""

from hostprov.core.config.loader import (
    CONFIG_FILE,
    ConfigError,
    find_config_file,
    load_config,
)

__all__ = ["CONFIG_FILE", "ConfigError", "find_config_file", "load_config"]
