"""Admission control: compute what an agent is actually granted.

The grant is always bounded by both the request and the policy. The version
check is the only hard rejection; every other shortfall degrades to a smaller
grant.
"""

from typing import Any

from warden.manifest.catalog import (
    DEFAULT_WORLD_POLICY,
    SEMVER_PATTERN,
    ManifestDefaults,
    PolicyHolder,
    WorldPolicy,
)
from warden.manifest.models import (
    AdmissionResult,
    AgentManifest,
    GrantedCapabilities,
    RequestedEnergyBudget,
    RequestedObservationBudget,
    RequestedRateLimit,
)
from warden.manifest.types import (
    ActionRateLimit,
    AgentKind,
    Capability,
    EnergyBudget,
    ObservationBudget,
)
from warden.utils.telemetry import (
    ADMISSION_DECISIONS,
    CAPABILITIES_DROPPED,
    get_logger,
)


def parse_semver(version: str) -> tuple[int, int, int] | None:
    """Parse a strictly numeric ``major.minor.patch`` version.

    Returns:
        Version tuple, or None if the string is not a three-part version
    """
    match = SEMVER_PATTERN.match(version)
    if not match:
        return None
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch)


def compare_semver(a: str, b: str) -> int:
    """Compare two versions.

    Unparsable operands compare as equal.

    Returns:
        -1 if a < b, 0 if equal, 1 if a > b
    """
    pa = parse_semver(a)
    pb = parse_semver(b)
    if pa is None or pb is None:
        return 0
    if pa < pb:
        return -1
    if pa > pb:
        return 1
    return 0


def effective_min_version(manifest: AgentManifest) -> str:
    """Minimum host version the manifest requires, with the default applied."""
    if manifest.compat and manifest.compat.min_habitat_version:
        return manifest.compat.min_habitat_version
    return ManifestDefaults.MIN_HABITAT_VERSION


def intersect_capabilities(
    requested: tuple[Capability, ...], policy: WorldPolicy
) -> tuple[Capability, ...]:
    """Requested capabilities the policy allows, in request order, deduplicated."""
    return tuple(cap for cap in dict.fromkeys(requested) if policy.allows(cap))


def resolve_rate_limit(
    requested: RequestedRateLimit | None, policy: WorldPolicy
) -> ActionRateLimit:
    """Wider window, stricter cap."""
    default = ManifestDefaults.MAX_ACTIONS_PER_WINDOW
    window_ticks = default.window_ticks
    cap = default.max
    if requested is not None:
        if requested.window_ticks is not None:
            window_ticks = requested.window_ticks
        if requested.max is not None:
            cap = requested.max

    return ActionRateLimit(
        window_ticks=max(window_ticks, policy.max_action_rate.window_ticks),
        max=min(cap, policy.max_action_rate.max),
    )


def resolve_compute_budget(requested: float | None, policy: WorldPolicy) -> float:
    if requested is None:
        requested = ManifestDefaults.COMPUTE_BUDGET_MS_PER_TICK
    return min(requested, policy.max_compute_budget_ms)


def resolve_observation_budget(
    requested: RequestedObservationBudget | None, policy: WorldPolicy
) -> ObservationBudget:
    """Fewer cells and more noise; fields pass through."""
    default = ManifestDefaults.OBSERVATION_BUDGET
    requested = requested or RequestedObservationBudget()

    max_cells = (
        requested.max_cells if requested.max_cells is not None else default.max_cells
    )
    max_fields = (
        requested.max_fields if requested.max_fields is not None else default.max_fields
    )
    noise_floor = (
        requested.noise_floor
        if requested.noise_floor is not None
        else default.noise_floor
    )

    return ObservationBudget(
        max_cells=min(max_cells, policy.max_observation_cells),
        max_fields=max_fields,
        noise_floor=max(noise_floor, policy.min_observation_noise),
    )


def resolve_energy_budget(
    requested: RequestedEnergyBudget | None, policy: WorldPolicy
) -> EnergyBudget:
    """Per-tick energy capped by policy; reserve passes through."""
    default = ManifestDefaults.ENERGY_BUDGET
    requested = requested or RequestedEnergyBudget()

    max_per_tick = (
        requested.max_per_tick
        if requested.max_per_tick is not None
        else default.max_per_tick
    )
    max_reserve = (
        requested.max_reserve
        if requested.max_reserve is not None
        else default.max_reserve
    )

    return EnergyBudget(
        max_per_tick=min(max_per_tick, policy.max_energy_per_tick),
        max_reserve=max_reserve,
    )


def resolve_quarantine(
    manifest: AgentManifest, policy: WorldPolicy
) -> tuple[bool, str | None]:
    """Decide quarantine and the shard to propagate.

    BUILTIN agents are never quarantined. Other kinds are quarantined when the
    policy forces it or the manifest asks for it.
    """
    if manifest.agent.kind == AgentKind.BUILTIN:
        return False, None

    settings = manifest.quarantine
    requested = settings.required if settings else False
    if not (policy.quarantine_third_party or requested):
        return False, None
    return True, settings.shard_id if settings else None


def perform_admission(
    manifest: AgentManifest, policy: WorldPolicy = DEFAULT_WORLD_POLICY
) -> AdmissionResult:
    """Determine what an agent is granted.

    Args:
        manifest: Validated manifest
        policy: Policy snapshot to decide against

    Returns:
        AdmissionResult; ``admitted`` is False only on a version mismatch
    """
    min_version = effective_min_version(manifest)
    if compare_semver(policy.habitat_version, min_version) < 0:
        return AdmissionResult(
            admitted=False,
            rejection_reasons=(
                f"Habitat version {policy.habitat_version} < required {min_version}",
            ),
        )

    requested = manifest.requested
    in_quarantine, shard_id = resolve_quarantine(manifest, policy)

    granted = GrantedCapabilities(
        capabilities=intersect_capabilities(requested.capabilities, policy),
        max_actions_per_window=resolve_rate_limit(
            requested.max_actions_per_window, policy
        ),
        compute_budget_ms_per_tick=resolve_compute_budget(
            requested.compute_budget_ms_per_tick, policy
        ),
        observation_budget=resolve_observation_budget(
            requested.observation_budget, policy
        ),
        energy_budget=resolve_energy_budget(requested.energy_budget, policy),
        in_quarantine=in_quarantine,
        shard_id=shard_id,
    )

    return AdmissionResult(admitted=True, granted=granted)


class AdmissionController:
    """Admits manifests against the active world policy.

    The policy is read once per decision, so a concurrent ``swap_policy``
    affects the next decision only.
    """

    def __init__(
        self,
        policy: WorldPolicy | PolicyHolder = DEFAULT_WORLD_POLICY,
        logger: Any | None = None,
    ):
        """Initialize admission controller.

        Args:
            policy: Initial policy, or a holder shared with other components
            logger: Structured logger (defaults to ``warden.admission``)
        """
        self.policies = policy if isinstance(policy, PolicyHolder) else PolicyHolder(policy)
        self._logger = logger or get_logger("warden.admission")

    @property
    def policy(self) -> WorldPolicy:
        return self.policies.current

    def swap_policy(self, policy: WorldPolicy) -> WorldPolicy:
        return self.policies.swap(policy)

    def admit(self, manifest: AgentManifest) -> AdmissionResult:
        """Admit a validated manifest against a snapshot of the active policy."""
        policy = self.policies.current
        result = perform_admission(manifest, policy)
        kind = manifest.agent.kind.value

        if not result.admitted:
            ADMISSION_DECISIONS.labels(outcome="rejected", kind=kind).inc()
            self._logger.warning(
                "Agent rejected",
                agent_name=manifest.agent.name,
                kind=kind,
                reasons=list(result.rejection_reasons),
            )
            return result

        assert result.granted is not None
        dropped = [
            cap.value
            for cap in dict.fromkeys(manifest.requested.capabilities)
            if cap not in result.granted.capabilities
        ]
        for cap in dropped:
            CAPABILITIES_DROPPED.labels(capability=cap).inc()

        ADMISSION_DECISIONS.labels(outcome="admitted", kind=kind).inc()
        self._logger.info(
            "Agent admitted",
            agent_name=manifest.agent.name,
            kind=kind,
            capabilities=[cap.value for cap in result.granted.capabilities],
            dropped_capabilities=dropped,
            in_quarantine=result.granted.in_quarantine,
            shard_id=result.granted.shard_id,
            habitat_version=policy.habitat_version,
        )
        return result
