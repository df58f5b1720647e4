"""Configuration loader utilities."""

from .loader import DEFAULT_CONFIG_PATH, LiveConfig, load_config

__all__ = [
    "LiveConfig",
    "DEFAULT_CONFIG_PATH",
    "load_config",
]
