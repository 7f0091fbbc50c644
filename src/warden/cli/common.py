"""Argument parsing and output rendering shared by the CLI commands."""

import json
from collections.abc import Collection, Mapping
from dataclasses import dataclass, field
from typing import Any

import yaml


class UsageError(Exception):
    """Malformed command line; the message is printed as-is."""


@dataclass
class ParsedArgs:
    positional: list[str] = field(default_factory=list)
    options: dict[str, str] = field(default_factory=dict)
    flags: set[str] = field(default_factory=set)


def parse_args(
    args: list[str],
    *,
    options: Collection[str] = (),
    flags: Collection[str] = (),
    aliases: Mapping[str, str] | None = None,
    max_positional: int = 1,
) -> ParsedArgs:
    """Split command arguments into positionals, options and flags.

    Options take a value as ``--name value`` or ``--name=value``; flags take
    none. ``aliases`` maps short forms such as ``-f`` to their long form.

    Args:
        args: Arguments following the command name
        options: Names of value-taking options
        flags: Names of boolean flags
        aliases: Short form to long form mapping
        max_positional: Number of positional arguments accepted

    Returns:
        Parsed arguments

    Raises:
        UsageError: On an unknown option, a missing value or an extra argument
    """
    aliases = aliases or {}
    parsed = ParsedArgs()

    i = 0
    while i < len(args):
        arg = aliases.get(args[i], args[i])
        i += 1

        if not arg.startswith("-"):
            if len(parsed.positional) >= max_positional:
                raise UsageError(f"Unknown argument: {arg}")
            parsed.positional.append(arg)
            continue

        name, has_value, value = arg.lstrip("-").partition("=")
        if name in flags and not has_value:
            parsed.flags.add(name)
        elif name in options:
            if not has_value:
                if i >= len(args):
                    raise UsageError(f"Error: --{name} requires a value")
                value = args[i]
                i += 1
            parsed.options[name] = value
        else:
            raise UsageError(f"Unknown option: --{name}")

    return parsed


def output_format(parsed: ParsedArgs) -> str:
    """The ``--format`` option, checked against the supported renderings."""
    format_type = parsed.options.get("format", "yaml")
    if format_type not in ("yaml", "json"):
        raise UsageError(f"Error: Invalid format '{format_type}'. Use 'yaml' or 'json'")
    return format_type


def print_document(document: Any, format_type: str, sort_keys: bool = False) -> None:
    if format_type == "json":
        print(json.dumps(document, indent=2, sort_keys=sort_keys))
    else:
        print(yaml.dump(document, default_flow_style=False, sort_keys=sort_keys))
