"""Manifest schema described as data.

Each field of the manifest document is declared once as a ``FieldSpec``; the
validator interprets these declarations generically instead of hand-writing
type checks per field.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Literal

from warden.manifest.catalog import MANIFEST_VERSION, SEMVER_PATTERN
from warden.manifest.types import AgentKind, Capability, MutableTrait, TraitsPreset

FieldType = Literal["object", "array", "string", "integer", "number", "boolean"]

AGENT_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")
AGENT_NAME_MAX_LENGTH = 64

_UNSET: Any = object()


@dataclass(frozen=True)
class FieldSpec:
    """Declaration of one field in a JSON-like document.

    Attributes:
        type: Expected JSON type
        required: Whether the field must be present
        literal: Exact value the field must equal
        choices: Allowed string values
        non_empty: Strings and arrays must not be empty
        pattern: Regular expression a string must match
        pattern_label: Pattern text shown in messages (defaults to the regex)
        max_length: Maximum string length
        minimum: Inclusive lower bound for numbers
        maximum: Inclusive upper bound for numbers
        fields: Nested field declarations for objects
        items: Declaration applied to each array element
        item_label: Noun used when an array element is not an allowed choice
    """

    type: FieldType
    required: bool = False
    literal: Any = _UNSET
    choices: tuple[str, ...] | None = None
    non_empty: bool = False
    pattern: re.Pattern[str] | None = None
    pattern_label: str | None = None
    max_length: int | None = None
    minimum: float | None = None
    maximum: float | None = None
    fields: dict[str, "FieldSpec"] = field(default_factory=dict)
    items: "FieldSpec | None" = None
    item_label: str = "value"

    @property
    def has_literal(self) -> bool:
        return self.literal is not _UNSET

    def noun(self) -> str:
        """Short description of the expected value, used in messages."""
        if self.type in ("string", "array") and self.non_empty:
            return f"non-empty {self.type}"
        return self.type

    def range_text(self) -> str:
        """Describe the numeric expectation, e.g. ``number between 1 and 100``."""
        noun = self.type
        if self.minimum is not None and self.maximum is not None:
            return f"{noun} between {self.minimum:g} and {self.maximum:g}"
        if self.minimum is not None:
            return f"{noun} >= {self.minimum:g}"
        if self.maximum is not None:
            return f"{noun} <= {self.maximum:g}"
        return noun

    def choices_text(self) -> str:
        """Describe the allowed choices, e.g. ``WASM, PROCESS, or BUILTIN``."""
        options = list(self.choices or ())
        if len(options) <= 2:
            return " or ".join(options)
        return ", ".join(options[:-1]) + ", or " + options[-1]


def _values(enum_type: Any) -> tuple[str, ...]:
    return tuple(member.value for member in enum_type)


RATE_LIMIT_SCHEMA = {
    "windowTicks": FieldSpec("integer", minimum=1),
    "max": FieldSpec("integer", minimum=0),
}

OBSERVATION_BUDGET_SCHEMA = {
    "maxCells": FieldSpec("integer", minimum=0),
    "maxFields": FieldSpec("integer", minimum=0),
    "noiseFloor": FieldSpec("number", minimum=0, maximum=1),
}

ENERGY_BUDGET_SCHEMA = {
    "maxPerTick": FieldSpec("number", minimum=0),
    "maxReserve": FieldSpec("number", minimum=0),
}

MANIFEST_SCHEMA: dict[str, FieldSpec] = {
    "manifestVersion": FieldSpec("string", required=True, literal=MANIFEST_VERSION),
    "agent": FieldSpec(
        "object",
        required=True,
        fields={
            "name": FieldSpec(
                "string",
                required=True,
                non_empty=True,
                pattern=AGENT_NAME_PATTERN,
                pattern_label="^[a-zA-Z][a-zA-Z0-9_-]*$",
                max_length=AGENT_NAME_MAX_LENGTH,
            ),
            "kind": FieldSpec("string", required=True, choices=_values(AgentKind)),
            "entry": FieldSpec("string", required=True, non_empty=True),
            "description": FieldSpec("string"),
        },
    ),
    "requested": FieldSpec(
        "object",
        required=True,
        fields={
            "capabilities": FieldSpec(
                "array",
                required=True,
                non_empty=True,
                items=FieldSpec("string", choices=_values(Capability)),
                item_label="capability",
            ),
            "maxActionsPerWindow": FieldSpec("object", fields=RATE_LIMIT_SCHEMA),
            "computeBudgetMsPerTick": FieldSpec("number", minimum=1, maximum=100),
            "observationBudget": FieldSpec(
                "object", fields=OBSERVATION_BUDGET_SCHEMA
            ),
            "energyBudget": FieldSpec("object", fields=ENERGY_BUDGET_SCHEMA),
        },
    ),
    "defaults": FieldSpec(
        "object",
        fields={
            "traitsPreset": FieldSpec("string", choices=_values(TraitsPreset)),
            "mutableTraits": FieldSpec(
                "array",
                items=FieldSpec("string", choices=_values(MutableTrait)),
                item_label="trait",
            ),
        },
    ),
    "compat": FieldSpec(
        "object",
        fields={
            "minHabitatVersion": FieldSpec(
                "string",
                pattern=SEMVER_PATTERN,
                pattern_label="major.minor.patch",
            ),
        },
    ),
    "quarantine": FieldSpec(
        "object",
        fields={
            "required": FieldSpec("boolean"),
            "shardId": FieldSpec("string", non_empty=True),
        },
    ),
}
