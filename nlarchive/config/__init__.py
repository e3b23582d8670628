"""Configuration management for the newsletter archive."""

from .loader import Config, load_config, save_config
from .models import ApiConfig, ConfigModel, MatchingConfig, PostgresConfig, SearchConfig

__all__ = [
    "Config",
    "ConfigModel",
    "ApiConfig",
    "MatchingConfig",
    "PostgresConfig",
    "SearchConfig",
    "load_config",
    "save_config",
]
