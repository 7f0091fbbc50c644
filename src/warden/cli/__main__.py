"""Entry point for the `warden` command."""

import sys
from collections.abc import Callable


def run_version(args: list[str]) -> int:
    from warden import __version__

    print(f"warden {__version__}")
    return 0


def run_validate(args: list[str]) -> int:
    from warden.cli.manifest import validate_command

    return validate_command(args)


def run_admit(args: list[str]) -> int:
    from warden.cli.manifest import admit_command

    return admit_command(args)


def run_config(args: list[str]) -> int:
    from warden.cli.config import run_config_command

    return run_config_command(args)


# Command modules are imported on use so `warden version` stays cheap
COMMANDS: dict[str, Callable[[list[str]], int]] = {
    "version": run_version,
    "validate": run_validate,
    "admit": run_admit,
    "config": run_config,
}


def print_help() -> None:
    """Print CLI help message."""
    print(
        """warden - Capability admission and sandboxed execution for untrusted agents

Usage:
    warden <command> [options]

Commands:
    version     Show version information
    validate    Validate an agent manifest (JSON or YAML)
    admit       Show what the configured world policy grants a manifest
                Options: --config=file, --format=yaml|json
    config      Configuration management
    help        Show this help message

Options:
    -h, --help  Show help message
"""
    )


def main(args: list[str] | None = None) -> int:
    """Main entry point for the warden CLI."""
    if args is None:
        args = sys.argv[1:]

    if not args or args[0] in ("-h", "--help", "help"):
        print_help()
        return 0

    command = COMMANDS.get(args[0])
    if command is None:
        print(f"Unknown command: {args[0]}")
        print_help()
        return 1
    return command(args[1:])


if __name__ == "__main__":
    sys.exit(main())
