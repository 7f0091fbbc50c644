"""Capability catalog, manifest defaults and world policy.

The world policy describes the absolute ceilings any agent may receive.
Policies are frozen; a host replaces the active policy wholesale through
``PolicyHolder.swap`` between admission decisions.
"""

import re

from pydantic import Field, field_validator

from warden.manifest.types import (
    ActionRateLimit,
    Capability,
    EnergyBudget,
    ObservationBudget,
    TraitsPreset,
    WireModel,
)
from warden.utils.telemetry import get_logger

MANIFEST_VERSION = "1.0"

SEMVER_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")


class ManifestDefaults:
    """Values used for optional manifest fields that were not declared."""

    MAX_ACTIONS_PER_WINDOW = ActionRateLimit(window_ticks=200, max=10)
    COMPUTE_BUDGET_MS_PER_TICK = 10.0
    OBSERVATION_BUDGET = ObservationBudget(max_cells=9, max_fields=12, noise_floor=0.2)
    ENERGY_BUDGET = EnergyBudget(max_per_tick=20, max_reserve=200)
    TRAITS_PRESET = TraitsPreset.MINIMAL
    MIN_HABITAT_VERSION = "0.12.0"


class WorldPolicy(WireModel):
    """Process-wide ceilings on what any agent may be granted."""

    max_capabilities: tuple[Capability, ...] = Field(
        description="Maximum capability set grantable to any agent",
    )
    max_action_rate: ActionRateLimit = Field(
        description="Ceiling on the action rate (window widens, cap tightens)",
    )
    max_compute_budget_ms: float = Field(
        gt=0.0, description="Maximum compute budget per tick in milliseconds"
    )
    min_observation_noise: float = Field(
        ge=0.0, le=1.0, description="Minimum observation noise floor"
    )
    max_observation_cells: int = Field(ge=0, description="Maximum observed cells")
    max_energy_per_tick: float = Field(ge=0.0, description="Maximum energy per tick")
    quarantine_third_party: bool = Field(
        description="Quarantine every agent that is not BUILTIN",
    )
    habitat_version: str = Field(description="Host version (major.minor.patch)")

    @field_validator("habitat_version")
    @classmethod
    def validate_habitat_version(cls, v: str) -> str:
        """Require a strictly numeric three-part version."""
        if not SEMVER_PATTERN.match(v):
            raise ValueError(f"habitat_version must be major.minor.patch, got {v!r}")
        return v

    def allows(self, capability: Capability) -> bool:
        """Check whether the policy ceiling includes a capability."""
        return capability in self.max_capabilities


DEFAULT_WORLD_POLICY = WorldPolicy(
    max_capabilities=(
        Capability.MOVE,
        Capability.SENSE,
        Capability.GENERATE_TRACE,
        Capability.INQUIRY,
    ),
    max_action_rate=ActionRateLimit(window_ticks=200, max=5),
    max_compute_budget_ms=10,
    min_observation_noise=0.2,
    max_observation_cells=9,
    max_energy_per_tick=20,
    quarantine_third_party=True,
    habitat_version="0.12.0",
)


class PolicyHolder:
    """Holds the active world policy.

    Readers take one snapshot through ``current`` per decision; ``swap``
    replaces the whole policy object, so a decision never observes a mix of
    two policies.
    """

    def __init__(self, policy: WorldPolicy = DEFAULT_WORLD_POLICY):
        self._policy = policy
        self._logger = get_logger("warden.policy")

    @property
    def current(self) -> WorldPolicy:
        return self._policy

    def swap(self, policy: WorldPolicy) -> WorldPolicy:
        """Replace the active policy.

        Args:
            policy: New policy

        Returns:
            The policy that was active before the swap
        """
        previous = self._policy
        self._policy = policy
        self._logger.info(
            "World policy swapped",
            previous_version=previous.habitat_version,
            habitat_version=policy.habitat_version,
        )
        return previous
