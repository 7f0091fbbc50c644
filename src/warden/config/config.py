"""Core configuration management for warden.

This module provides the main configuration classes and loading functionality
with environment variable support and feature flags.
"""

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_snake

from warden.manifest.catalog import DEFAULT_WORLD_POLICY, WorldPolicy
from warden.utils.errors import ConfigError
from warden.utils.telemetry import setup_logging, setup_tracing, start_metrics_server

_TRUE_VALUES = ("true", "1", "yes", "on")


@dataclass
class FeatureFlags:
    """Feature flags for enabling/disabling functionality.

    These can be controlled via the WARDEN_FEATURES environment variable
    as a comma-separated list (e.g., "logging,truncation,metrics").
    """

    # Observability features
    structured_logging: bool = True
    log_truncation: bool = True
    metrics_export: bool = True
    tracing: bool = False

    @classmethod
    def from_env(cls, env_var: str = "WARDEN_FEATURES") -> "FeatureFlags":
        """Load feature flags from environment variable.

        Args:
            env_var: Environment variable name (default: WARDEN_FEATURES)

        Returns:
            FeatureFlags instance with features enabled based on env var
        """
        features_str = os.getenv(env_var, "")
        if not features_str:
            return cls()

        enabled_features = {f.strip().lower() for f in features_str.split(",")}

        feature_mapping = {
            "logging": "structured_logging",
            "truncation": "log_truncation",
            "metrics": "metrics_export",
            "tracing": "tracing",
        }

        kwargs = {}
        for feature_name, attr_name in feature_mapping.items():
            kwargs[attr_name] = feature_name in enabled_features

        return cls(**kwargs)

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "text"] = "json"


class MetricsConfig(BaseModel):
    """Metrics configuration."""

    enabled: bool = True
    port: int = 8000


class SandboxConfig(BaseModel):
    """Step execution and observation settings."""

    scheduling_overhead_ms: float = Field(
        default=5.0, ge=0.0, description="Allowance added to every step deadline"
    )
    noise_seed: int | None = Field(
        default=None, description="Seed for observation noise (None: unseeded)"
    )


class Config(BaseModel):
    """Main configuration class for warden.

    This class combines all configuration sections and provides
    validation and environment variable loading.
    """

    # World policy every admission is decided against
    policy: WorldPolicy = Field(default_factory=lambda: DEFAULT_WORLD_POLICY)

    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)

    # Feature flags
    features: FeatureFlags = Field(default_factory=FeatureFlags)

    # Subsystem configurations
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    # Environment and deployment
    environment: Literal["development", "staging", "production", "testing"] = (
        "development"
    )
    debug: bool = False

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("policy", mode="before")
    @classmethod
    def validate_policy(cls, v: Any) -> Any:
        """Fill a partial policy from the default policy."""
        if isinstance(v, dict):
            return _deep_merge(DEFAULT_WORLD_POLICY.model_dump(), _snake_keys(v))
        return v

    @field_validator("features", mode="before")
    @classmethod
    def validate_features(cls, v: Any) -> Any:
        """Validate feature flags."""
        if isinstance(v, dict):
            return FeatureFlags(**v)
        return v

    def to_document(self) -> dict[str, Any]:
        """Plain-data form for display and for writing config files."""
        data = self.model_dump(mode="json", exclude={"policy", "features"})
        data["policy"] = self.policy.model_dump(mode="json")
        data["features"] = self.features.to_dict()
        return data


def _snake_keys(data: dict[str, Any]) -> dict[str, Any]:
    return {
        to_snake(key): _snake_keys(value) if isinstance(value, dict) else value
        for key, value in data.items()
    }


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_config_file(config_path: Path) -> dict[str, Any]:
    try:
        with open(config_path) as f:
            config_data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}") from e

    if config_data is None:
        return {}
    if not isinstance(config_data, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {config_path}")
    if isinstance(config_data.get("policy"), dict):
        config_data["policy"] = _snake_keys(config_data["policy"])
    return config_data


def _parse_env_number(name: str, cast: type) -> Any:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return cast(value)
    except ValueError as e:
        raise ConfigError(f"Invalid {name}: {value}") from e


def _read_env() -> dict[str, Any]:
    config_data: dict[str, Any] = {}

    # Environment and debug
    if env_val := os.getenv("WARDEN_ENVIRONMENT"):
        config_data["environment"] = env_val.lower()
    if env_val := os.getenv("WARDEN_DEBUG"):
        config_data["debug"] = env_val.lower() in _TRUE_VALUES

    # Feature flags
    if os.getenv("WARDEN_FEATURES"):
        config_data["features"] = FeatureFlags.from_env().to_dict()

    # Logging configuration
    logging_config = {}
    if env_val := os.getenv("WARDEN_LOG_LEVEL"):
        logging_config["level"] = env_val.upper()
    if env_val := os.getenv("WARDEN_LOG_FORMAT"):
        logging_config["format"] = env_val.lower()
    if logging_config:
        config_data["logging"] = logging_config

    # Metrics configuration
    if (port := _parse_env_number("WARDEN_METRICS_PORT", int)) is not None:
        config_data["metrics"] = {"port": port}

    # World policy
    policy_config: dict[str, Any] = {}
    if env_val := os.getenv("WARDEN_HABITAT_VERSION"):
        policy_config["habitat_version"] = env_val
    if env_val := os.getenv("WARDEN_QUARANTINE_THIRD_PARTY"):
        policy_config["quarantine_third_party"] = env_val.lower() in _TRUE_VALUES
    budget = _parse_env_number("WARDEN_MAX_COMPUTE_BUDGET_MS", float)
    if budget is not None:
        policy_config["max_compute_budget_ms"] = budget
    if policy_config:
        config_data["policy"] = policy_config

    # Sandbox configuration
    sandbox_config: dict[str, Any] = {}
    overhead = _parse_env_number("WARDEN_SCHEDULING_OVERHEAD_MS", float)
    if overhead is not None:
        sandbox_config["scheduling_overhead_ms"] = overhead
    if (seed := _parse_env_number("WARDEN_NOISE_SEED", int)) is not None:
        sandbox_config["noise_seed"] = seed
    if sandbox_config:
        config_data["sandbox"] = sandbox_config

    return config_data


def load_config_from_file(config_path: Path) -> Config:
    """Load configuration from YAML file.

    Policy keys may be written in camelCase or snake_case; omitted policy
    fields take the default policy's values.

    Args:
        config_path: Path to configuration file

    Returns:
        Loaded configuration

    Raises:
        ConfigError: If configuration is invalid or file cannot be read
    """
    config_data = _read_config_file(config_path)
    try:
        return Config(**config_data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e


def load_config_from_env() -> Config:
    """Load configuration from environment variables.

    Environment variables are mapped as follows:
    - WARDEN_ENVIRONMENT: Environment name (development/staging/production/testing)
    - WARDEN_DEBUG: Enable debug mode (true/false)
    - WARDEN_FEATURES: Comma-separated list of enabled features
    - WARDEN_LOG_LEVEL: Logging level
    - WARDEN_LOG_FORMAT: Logging format (json/text)
    - WARDEN_METRICS_PORT: Metrics server port
    - WARDEN_HABITAT_VERSION: Host version used for the admission version gate
    - WARDEN_QUARANTINE_THIRD_PARTY: Quarantine every non-BUILTIN agent
    - WARDEN_MAX_COMPUTE_BUDGET_MS: Policy ceiling on per-tick compute
    - WARDEN_SCHEDULING_OVERHEAD_MS: Allowance added to step deadlines
    - WARDEN_NOISE_SEED: Seed for observation noise

    Returns:
        Configuration loaded from environment variables
    """
    try:
        return Config(**_read_env())
    except ValidationError as e:
        raise ConfigError(f"Environment configuration validation failed: {e}") from e


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from file and environment variables.

    Configuration is loaded in the following order (later sources override earlier):
    1. Default values
    2. Configuration file (if provided)
    3. Environment variables

    Sections are merged key by key, so an environment variable overrides a
    single setting without discarding the rest of its section.

    Args:
        config_path: Optional path to configuration file

    Returns:
        Merged configuration
    """
    config_data: dict[str, Any] = {}
    if config_path and config_path.exists():
        config_data = _read_config_file(config_path)

    config_data = _deep_merge(config_data, _read_env())
    try:
        return Config(**config_data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e


def validate_config(config: Config) -> None:
    """Validate configuration for consistency and correctness.

    Args:
        config: Configuration to validate

    Raises:
        ConfigError: If configuration is invalid
    """
    if not config.policy.max_capabilities:
        raise ConfigError("policy.max_capabilities must not be empty")

    if config.policy.max_action_rate.max <= 0:
        raise ConfigError("policy.max_action_rate.max must be positive")

    # Validate metrics configuration
    if config.metrics.port <= 0 or config.metrics.port > 65535:
        raise ConfigError("metrics.port must be between 1 and 65535")

    # Environment-specific validations
    if config.environment == "production":
        if config.debug:
            raise ConfigError("Debug mode should not be enabled in production")

        if config.logging.level == "DEBUG":
            raise ConfigError("DEBUG logging should not be used in production")

        if not config.features.log_truncation:
            raise ConfigError("Log truncation should be enabled in production")


def configure_observability(config: Config, serve_metrics: bool = False) -> None:
    """Apply logging, tracing and metrics settings at process start.

    Args:
        config: Loaded configuration
        serve_metrics: Start the Prometheus HTTP server when metrics are enabled
    """
    if config.features.structured_logging:
        setup_logging(
            log_level=config.logging.level,
            log_format=config.logging.format,
            enable_truncation=config.features.log_truncation,
        )
    if config.features.tracing:
        setup_tracing()
    if serve_metrics and config.features.metrics_export and config.metrics.enabled:
        start_metrics_server(config.metrics.port)
