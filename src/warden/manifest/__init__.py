"""Agent manifests: capability catalog, validation and admission."""

from .admission import (
    AdmissionController,
    compare_semver,
    parse_semver,
    perform_admission,
)
from .catalog import (
    DEFAULT_WORLD_POLICY,
    MANIFEST_VERSION,
    ManifestDefaults,
    PolicyHolder,
    WorldPolicy,
)
from .models import (
    AdmissionResult,
    AgentIdentity,
    AgentManifest,
    GrantedCapabilities,
    QuarantineSettings,
    RequestedCapabilities,
)
from .types import (
    ActionRateLimit,
    AgentKind,
    Capability,
    EnergyBudget,
    MutableTrait,
    ObservationBudget,
    TraitsPreset,
)
from .validator import (
    ManifestLoadResult,
    ValidationIssue,
    ValidationResult,
    load_manifest,
    load_manifest_file,
    parse_manifest,
    validate_manifest,
)

__all__ = [
    "DEFAULT_WORLD_POLICY",
    "MANIFEST_VERSION",
    "ActionRateLimit",
    "AdmissionController",
    "AdmissionResult",
    "AgentIdentity",
    "AgentKind",
    "AgentManifest",
    "Capability",
    "EnergyBudget",
    "GrantedCapabilities",
    "ManifestDefaults",
    "ManifestLoadResult",
    "MutableTrait",
    "ObservationBudget",
    "PolicyHolder",
    "QuarantineSettings",
    "RequestedCapabilities",
    "TraitsPreset",
    "ValidationIssue",
    "ValidationResult",
    "WorldPolicy",
    "compare_semver",
    "load_manifest",
    "load_manifest_file",
    "parse_manifest",
    "parse_semver",
    "perform_admission",
    "validate_manifest",
]
