"""Pydantic models for manifests, grants and admission results.

Manifests are exchanged as camelCase JSON documents and exposed to Python code
with snake_case attributes. Every model is frozen: a manifest is never mutated
after validation and a grant is never mutated after admission.
"""

from typing import Any, Literal

from pydantic import Field

from warden.manifest.types import (
    ActionRateLimit,
    AgentKind,
    Capability,
    EnergyBudget,
    MutableTrait,
    ObservationBudget,
    TraitsPreset,
    WireModel,
)


class AgentIdentity(WireModel):
    """Agent identity and entry point."""

    name: str = Field(description="Agent name, used for logging only")
    kind: AgentKind = Field(description="Execution mode")
    entry: str = Field(description="Entry point path or command")
    description: str | None = Field(
        default=None, description="Human-readable description, never exposed to agents"
    )


class RequestedRateLimit(WireModel):
    """Requested rate limit; missing fields fall back to defaults at admission."""

    window_ticks: int | None = None
    max: int | None = None


class RequestedObservationBudget(WireModel):
    """Requested observation budget; missing fields fall back to defaults."""

    max_cells: int | None = None
    max_fields: int | None = None
    noise_floor: float | None = None


class RequestedEnergyBudget(WireModel):
    """Requested energy budget; missing fields fall back to defaults."""

    max_per_tick: float | None = None
    max_reserve: float | None = None


class RequestedCapabilities(WireModel):
    """The ``requested`` block of a manifest."""

    capabilities: tuple[Capability, ...] = Field(min_length=1)
    max_actions_per_window: RequestedRateLimit | None = None
    compute_budget_ms_per_tick: float | None = None
    observation_budget: RequestedObservationBudget | None = None
    energy_budget: RequestedEnergyBudget | None = None


class AgentDefaults(WireModel):
    """Default trait values. Carried as data; the engine does not interpret them."""

    traits_preset: TraitsPreset | None = None
    mutable_traits: tuple[MutableTrait, ...] = ()


class CompatRequirements(WireModel):
    """Compatibility requirements on the host."""

    min_habitat_version: str | None = None


class QuarantineSettings(WireModel):
    """Quarantine preferences declared by the agent."""

    required: bool = False
    shard_id: str | None = None


class AgentManifest(WireModel):
    """Complete agent manifest.

    Declares what an agent needs. The world grants a subset, never more.
    """

    manifest_version: Literal["1.0"]
    agent: AgentIdentity
    requested: RequestedCapabilities
    defaults: AgentDefaults | None = None
    compat: CompatRequirements | None = None
    quarantine: QuarantineSettings | None = None

    def to_document(self) -> dict[str, Any]:
        """Serialize back to the camelCase manifest document."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GrantedCapabilities(WireModel):
    """What the world actually allows an admitted agent.

    Every field is bounded by both the request and the policy that produced it.
    """

    capabilities: tuple[Capability, ...]
    max_actions_per_window: ActionRateLimit
    compute_budget_ms_per_tick: float
    observation_budget: ObservationBudget
    energy_budget: EnergyBudget
    in_quarantine: bool
    shard_id: str | None = None

    def allows(self, capability: Capability) -> bool:
        """Check whether a capability was granted."""
        return capability in self.capabilities


class AdmissionResult(WireModel):
    """Outcome of an admission decision."""

    admitted: bool
    granted: GrantedCapabilities | None = None
    rejection_reasons: tuple[str, ...] = ()
