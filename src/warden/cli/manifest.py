"""Manifest CLI commands: validate and admit."""

from pathlib import Path

from warden.cli.common import UsageError, output_format, parse_args, print_document
from warden.config import (
    ConfigError,
    configure_observability,
    get_config_file_path,
    load_config,
)
from warden.manifest import AdmissionController, ManifestLoadResult, load_manifest_file

ADMIT_USAGE = "Usage: warden admit <manifest> [--config file] [--format yaml|json]"


def _report_invalid(path: Path, loaded: ManifestLoadResult) -> None:
    print(f"✗ Manifest is invalid: {path}")
    for issue in loaded.validation.errors:
        print(f"  - {issue}")


def validate_command(args: list[str]) -> int:
    """Validate a manifest file and print every problem found.

    Args:
        args: Command line arguments

    Returns:
        Exit code (0 for a valid manifest, 1 otherwise)
    """
    try:
        parsed = parse_args(args)
    except UsageError as e:
        print(e)
        return 1
    if not parsed.positional:
        print("Usage: warden validate <manifest>")
        return 1

    manifest_path = Path(parsed.positional[0])
    loaded = load_manifest_file(manifest_path)
    if not loaded.validation.valid:
        _report_invalid(manifest_path, loaded)
        return 1

    print(f"✓ Manifest is valid: {manifest_path}")
    return 0


def admit_command(args: list[str]) -> int:
    """Validate a manifest and print what the configured policy grants it.

    The world policy comes from ``--config``, or from the discovered
    configuration file when none is given.

    Args:
        args: Command line arguments

    Returns:
        Exit code (0 when admitted, 1 on invalid input or rejection)
    """
    try:
        parsed = parse_args(args, options=("config", "format"))
        format_type = output_format(parsed)
    except UsageError as e:
        print(e)
        return 1
    if not parsed.positional:
        print(ADMIT_USAGE)
        return 1

    config_option = parsed.options.get("config")
    try:
        config = load_config(
            Path(config_option) if config_option else get_config_file_path()
        )
    except ConfigError as e:
        print(f"Error loading configuration: {e}")
        return 1
    configure_observability(config)

    manifest_path = Path(parsed.positional[0])
    loaded = load_manifest_file(manifest_path)
    if loaded.manifest is None:
        _report_invalid(manifest_path, loaded)
        return 1

    result = AdmissionController(config.policy).admit(loaded.manifest)
    print_document(
        result.model_dump(mode="json", by_alias=True, exclude_none=True), format_type
    )
    return 0 if result.admitted else 1
