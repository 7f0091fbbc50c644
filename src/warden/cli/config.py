"""Configuration management CLI commands."""

import os
from pathlib import Path

import yaml

from warden.cli.common import UsageError, output_format, parse_args, print_document
from warden.config import (
    Config,
    ConfigError,
    load_config,
    load_config_from_env,
    validate_config,
)
from warden.config.environment import (
    CONFIG_PATH_VAR,
    get_config_file_path,
    get_environment,
)

ENV_VARS = [
    CONFIG_PATH_VAR,
    "WARDEN_ENVIRONMENT",
    "WARDEN_DEBUG",
    "WARDEN_FEATURES",
    "WARDEN_LOG_LEVEL",
    "WARDEN_LOG_FORMAT",
    "WARDEN_METRICS_PORT",
    "WARDEN_HABITAT_VERSION",
    "WARDEN_QUARANTINE_THIRD_PARTY",
    "WARDEN_MAX_COMPUTE_BUDGET_MS",
    "WARDEN_SCHEDULING_OVERHEAD_MS",
    "WARDEN_NOISE_SEED",
]


def config_validate_command(args: list[str]) -> int:
    """Validate a configuration file, or the environment when none is given.

    Besides schema errors this reports policy and production problems found
    by ``validate_config``.
    """
    parsed = parse_args(args)

    try:
        if parsed.positional:
            config_path = Path(parsed.positional[0])
            print(f"Validating configuration file: {config_path}")
            if not config_path.exists():
                print(f"Error: Configuration file not found: {config_path}")
                return 1
            config = load_config(config_path)
        else:
            print("Validating configuration from environment variables")
            config = load_config_from_env()
        validate_config(config)
    except ConfigError as e:
        print(f"✗ Configuration validation failed: {e}")
        return 1

    print("✓ Configuration is valid")
    print(f"  Habitat version: {config.policy.habitat_version}")
    print(
        "  Capability ceiling: "
        + ", ".join(cap.value for cap in config.policy.max_capabilities)
    )
    return 0


def config_show_command(args: list[str]) -> int:
    """Print the effective configuration after file and environment merging."""
    parsed = parse_args(args, options=("format",), aliases={"-f": "--format"})
    format_type = output_format(parsed)

    config_path = Path(parsed.positional[0]) if parsed.positional else None
    try:
        config = load_config(config_path or get_config_file_path())
    except ConfigError as e:
        print(f"Error loading configuration: {e}")
        return 1

    print_document(config.to_document(), format_type, sort_keys=True)
    return 0


def config_init_command(args: list[str]) -> int:
    """Write a configuration file holding every default, policy included."""
    parsed = parse_args(
        args,
        options=("output",),
        flags=("force",),
        aliases={"-o": "--output", "-f": "--force"},
        max_positional=0,
    )
    output_path = Path(parsed.options.get("output", "warden.yaml"))

    if output_path.exists() and "force" not in parsed.flags:
        print(f"Error: Configuration file already exists: {output_path}")
        print("Use --force to overwrite")
        return 1

    try:
        with open(output_path, "w") as f:
            yaml.dump(
                Config().to_document(), f, default_flow_style=False, sort_keys=True
            )
    except OSError as e:
        print(f"Error creating configuration file: {e}")
        return 1

    print(f"✓ Configuration file created: {output_path}")
    return 0


def config_env_command(args: list[str]) -> int:
    """Show the detected environment and the WARDEN_* variables."""
    parsed = parse_args(
        args, flags=("all",), aliases={"-a": "--all"}, max_positional=0
    )
    show_all = "all" in parsed.flags

    print(f"Environment: {get_environment().value}")
    print(f"Config file: {get_config_file_path() or 'None found'}")
    print()

    print("Environment Variables:")
    for var in ENV_VARS:
        value = os.getenv(var)
        if value or show_all:
            print(f"  {var}={value or '(not set)'}")

    if not show_all:
        print("\nUse --all to show all variables (including unset)")
    return 0


COMMANDS = {
    "validate": config_validate_command,
    "show": config_show_command,
    "init": config_init_command,
    "env": config_env_command,
}


def run_config_command(args: list[str]) -> int:
    """Run configuration management commands.

    Args:
        args: Command line arguments

    Returns:
        Exit code (0 for success, 1 for error)
    """
    if not args or args[0] in ("help", "-h", "--help"):
        print_config_help()
        return 0

    command = COMMANDS.get(args[0])
    if command is None:
        print(f"Unknown config command: {args[0]}")
        print_config_help()
        return 1

    try:
        return command(args[1:])
    except UsageError as e:
        print(e)
        return 1


def print_config_help() -> None:
    """Print configuration command help."""
    print(
        """warden config - Configuration management

Usage:
    warden config <command> [options]

Commands:
    validate [file]     Validate configuration file or environment
    show [file]         Show effective configuration
                        Options: --format=yaml|json
    init [options]      Create default configuration file
                        Options: --output=file, --force
    env                 Show environment variables
                        Options: --all
    help                Show this help message

Examples:
    warden config validate
    warden config validate config/production.yaml
    warden config show --format=json
    warden config init --output=config/staging.yaml
    warden config env --all
"""
    )
