"""Structural and semantic validation of agent manifests.

``validate_manifest`` interprets ``MANIFEST_SCHEMA`` against an arbitrary,
possibly malformed input and reports every violation with a dotted path.
Validation and loading never raise: parse failures and schema failures come
back in the same ``ValidationResult`` shape.
"""

import math
from pathlib import Path
from typing import Any

import orjson
import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from warden.manifest.models import AgentManifest
from warden.manifest.schema import MANIFEST_SCHEMA, FieldSpec
from warden.utils.errors import ManifestError


class ValidationIssue(BaseModel):
    """One schema violation."""

    path: str = Field(description="Dotted field path, empty for the document root")
    message: str

    def __str__(self) -> str:
        return f"{self.path or '<root>'}: {self.message}"


class ValidationResult(BaseModel):
    """Result of validating a manifest document."""

    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)

    @classmethod
    def from_issues(cls, issues: list[ValidationIssue]) -> "ValidationResult":
        return cls(valid=not issues, errors=issues)

    def messages(self) -> list[str]:
        """Render every issue as ``path: message``."""
        return [str(issue) for issue in self.errors]


class ManifestLoadResult(BaseModel):
    """Result of loading a manifest from its serialized form."""

    manifest: AgentManifest | None = None
    validation: ValidationResult


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _has_type(value: Any, spec: FieldSpec) -> bool:
    if spec.type == "object":
        return isinstance(value, dict)
    if spec.type == "array":
        return isinstance(value, list | tuple)
    if spec.type == "string":
        return isinstance(value, str)
    if spec.type == "boolean":
        return isinstance(value, bool)
    # bool is an int subclass but never a valid number in a manifest
    if isinstance(value, bool):
        return False
    if spec.type == "integer":
        return isinstance(value, int)
    return isinstance(value, int | float) and math.isfinite(value)


def _missing_message(spec: FieldSpec) -> str:
    if spec.has_literal:
        return f'Must be "{spec.literal}"'
    if spec.choices:
        return f"Must be {spec.choices_text()}"
    return f"Required {spec.noun()}"


def _check_field(
    value: Any, spec: FieldSpec, path: str, issues: list[ValidationIssue]
) -> None:
    """Validate a present value against its spec, appending any violations."""

    def fail(message: str) -> None:
        issues.append(ValidationIssue(path=path, message=message))

    if spec.has_literal:
        if not isinstance(value, type(spec.literal)) or value != spec.literal:
            fail(f'Must be "{spec.literal}"')
        return

    if not _has_type(value, spec):
        if spec.choices:
            fail(f"Must be {spec.choices_text()}")
        elif spec.type in ("integer", "number"):
            fail(f"Must be {spec.range_text()}")
        elif spec.required:
            fail(f"Required {spec.noun()}")
        else:
            fail(f"Must be {spec.noun()}")
        return

    if spec.non_empty and len(value) == 0:
        fail(f"Required {spec.noun()}" if spec.required else f"Must be {spec.noun()}")
        return

    if spec.type == "string":
        if spec.pattern is not None and not spec.pattern.match(value):
            fail(f"Must match pattern {spec.pattern_label or spec.pattern.pattern}")
            return
        if spec.max_length is not None and len(value) > spec.max_length:
            fail(f"Max length {spec.max_length}")
            return
        if spec.choices and value not in spec.choices:
            fail(f"Must be {spec.choices_text()}")
        return

    if spec.type in ("integer", "number"):
        if (spec.minimum is not None and value < spec.minimum) or (
            spec.maximum is not None and value > spec.maximum
        ):
            fail(f"Must be {spec.range_text()}")
        return

    if spec.type == "object":
        _check_object(value, spec.fields, path, issues)
        return

    if spec.type == "array" and spec.items is not None:
        for item in value:
            item_issues: list[ValidationIssue] = []
            _check_field(item, spec.items, path, item_issues)
            if item_issues:
                fail(f"Invalid {spec.item_label}: {item}")


def _check_object(
    document: dict[str, Any],
    fields: dict[str, FieldSpec],
    path: str,
    issues: list[ValidationIssue],
) -> None:
    for name, spec in fields.items():
        field_path = _join(path, name)
        if name not in document or document[name] is None:
            if spec.required:
                issues.append(
                    ValidationIssue(path=field_path, message=_missing_message(spec))
                )
            continue
        _check_field(document[name], spec, field_path, issues)


def validate_manifest(manifest: Any) -> ValidationResult:
    """Validate a manifest document.

    Every violation is reported independently, each with the dotted path of
    the offending field.

    Args:
        manifest: Parsed manifest document (any value)

    Returns:
        ValidationResult listing all violations
    """
    if not isinstance(manifest, dict):
        return ValidationResult.from_issues(
            [ValidationIssue(path="", message="Manifest must be an object")]
        )

    issues: list[ValidationIssue] = []
    _check_object(manifest, MANIFEST_SCHEMA, "", issues)
    return ValidationResult.from_issues(issues)


def _issues_from_pydantic(error: PydanticValidationError) -> list[ValidationIssue]:
    return [
        ValidationIssue(
            path=".".join(str(part) for part in detail["loc"]),
            message=detail["msg"],
        )
        for detail in error.errors()
    ]


def _build(document: Any) -> ManifestLoadResult:
    validation = validate_manifest(document)
    if not validation.valid:
        return ManifestLoadResult(validation=validation)

    try:
        manifest = AgentManifest.model_validate(document)
    except PydanticValidationError as e:
        return ManifestLoadResult(
            validation=ValidationResult.from_issues(_issues_from_pydantic(e))
        )

    return ManifestLoadResult(manifest=manifest, validation=validation)


def load_manifest(text: str | bytes) -> ManifestLoadResult:
    """Load and validate a manifest from its JSON text.

    Args:
        text: JSON document

    Returns:
        ManifestLoadResult with the typed manifest when valid
    """
    try:
        document = orjson.loads(text)
    except orjson.JSONDecodeError as e:
        return ManifestLoadResult(
            validation=ValidationResult.from_issues(
                [ValidationIssue(path="", message=f"Invalid JSON: {e}")]
            )
        )

    return _build(document)


def load_manifest_file(path: Path) -> ManifestLoadResult:
    """Load and validate a manifest file (``.json``, ``.yaml`` or ``.yml``).

    Args:
        path: Path to the manifest file

    Returns:
        ManifestLoadResult; unreadable files are reported as validation issues
    """
    try:
        raw = path.read_bytes()
    except OSError as e:
        return ManifestLoadResult(
            validation=ValidationResult.from_issues(
                [ValidationIssue(path="", message=f"Cannot read manifest: {e}")]
            )
        )

    if path.suffix.lower() not in (".yaml", ".yml"):
        return load_manifest(raw)

    try:
        document = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        return ManifestLoadResult(
            validation=ValidationResult.from_issues(
                [ValidationIssue(path="", message=f"Invalid YAML: {e}")]
            )
        )

    return _build(document)


def parse_manifest(document: Any) -> AgentManifest:
    """Validate a manifest document and return the typed manifest.

    Args:
        document: Parsed manifest document

    Returns:
        Typed, immutable manifest

    Raises:
        ManifestError: If the document is not a valid manifest
    """
    result = _build(document)
    if result.manifest is None:
        raise ManifestError(result.validation.messages())
    return result.manifest
