"""Deployment environment detection and config file discovery."""

import os
from collections.abc import Iterator
from enum import Enum
from pathlib import Path

CONFIG_PATH_VAR = "WARDEN_CONFIG"


class Environment(Enum):
    """Supported deployment environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


# Checked in this order when WARDEN_ENVIRONMENT is unset or unknown
_MARKED_ENVIRONMENTS = (Environment.PRODUCTION, Environment.STAGING, Environment.TESTING)


def get_environment() -> Environment:
    """Detect the deployment environment.

    WARDEN_ENVIRONMENT wins when it names a known environment. Otherwise a
    ``.env.<name>`` marker file in the working directory decides, and
    development is the fallback.
    """
    try:
        return Environment(os.getenv("WARDEN_ENVIRONMENT", "").lower())
    except ValueError:
        pass

    cwd = Path.cwd()
    for environment in _MARKED_ENVIRONMENTS:
        if (cwd / f".env.{environment.value}").exists():
            return environment
    return Environment.DEVELOPMENT


def _candidate_paths(environment: Environment) -> Iterator[Path]:
    stems = (
        f"config/{environment.value}",
        f"warden.{environment.value}",
        "config/warden",
        "warden",
    )
    for stem in stems:
        for suffix in (".yaml", ".yml"):
            yield Path(stem + suffix)


def get_config_file_path(environment: Environment | None = None) -> Path | None:
    """Locate the configuration file to load.

    A path in WARDEN_CONFIG is returned as-is. Otherwise environment-specific
    files are preferred over the shared ``warden.yaml``.

    Args:
        environment: Environment to search for (defaults to the detected one)

    Returns:
        Path to the configuration file, or None if none was found
    """
    if explicit := os.getenv(CONFIG_PATH_VAR):
        return Path(explicit)

    if environment is None:
        environment = get_environment()

    return next((p for p in _candidate_paths(environment) if p.exists()), None)
