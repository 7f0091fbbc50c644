"""Configuration management for warden.

This module provides configuration loading, validation, and feature flag management
for the admission and sandbox engine.
"""

from warden.utils.errors import ConfigError

from .config import (
    Config,
    FeatureFlags,
    LoggingConfig,
    MetricsConfig,
    SandboxConfig,
    configure_observability,
    load_config,
    load_config_from_env,
    load_config_from_file,
    validate_config,
)
from .environment import Environment, get_config_file_path, get_environment

__all__ = [
    "Config",
    "ConfigError",
    "Environment",
    "FeatureFlags",
    "LoggingConfig",
    "MetricsConfig",
    "SandboxConfig",
    "configure_observability",
    "get_config_file_path",
    "get_environment",
    "load_config",
    "load_config_from_env",
    "load_config_from_file",
    "validate_config",
]
