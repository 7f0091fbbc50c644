"""Models exchanged between the host, the sandbox and agent step functions.

Agents receive only what these models carry: their grant, their own id, their
energy, location and tick, and a degraded observation. They never see their
action window or the world's energy ledger.
"""

from typing import Any

from pydantic import Field, field_validator

from warden.manifest.models import GrantedCapabilities
from warden.manifest.types import Capability, WireModel
from warden.utils.errors import ActionRejectionCode, SandboxErrorCode


class ObservedCell(WireModel):
    """Single cell of true (unnoised) world state, relative to the agent."""

    dx: int
    dy: int
    zone: str
    entity_count: int = Field(ge=0)
    trace_density: float = Field(ge=0.0)
    fields: dict[str, Any] = Field(default_factory=dict)


class DegradedCell(ObservedCell):
    """Observed cell after truncation and noise."""

    fields_omitted: int = Field(
        default=0, ge=0, description="Fields dropped from this cell by the budget"
    )


class DegradedObservation(WireModel):
    """Budget-limited, noise-injected view handed to agent logic."""

    cells: tuple[DegradedCell, ...] = ()
    noise_applied: float = Field(ge=0.0, le=1.0)
    fields_omitted: int = Field(
        default=0,
        ge=0,
        description="Cells dropped by truncation (kept for compatibility)",
    )
    cells_omitted: int = Field(default=0, ge=0, description="Cells dropped by truncation")


class Location(WireModel):
    x: float
    y: float


class AgentStepState(WireModel):
    """Agent state visible to the sandbox."""

    energy: float
    location: Location
    tick: int = Field(ge=0)
    observation: DegradedObservation


class StepContext(WireModel):
    """Execution context visible to the agent."""

    granted: GrantedCapabilities
    agent_id: str


class StepInput(WireModel):
    state: AgentStepState
    context: StepContext


class ActionRequest(WireModel):
    """Action an agent asks the world to perform.

    ``params`` is opaque data. Nothing in it can grant a capability, widen a
    rate limit or change a price.
    """

    type: str
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, v: Any) -> Any:
        """Accept Capability members as their tag."""
        if isinstance(v, Capability):
            return v.value
        return v

    @property
    def capability(self) -> Capability | None:
        """The capability this action needs, or None for an unknown tag."""
        try:
            return Capability(self.type)
        except ValueError:
            return None


class StepOutput(WireModel):
    """Well-formed output of one agent step."""

    actions: tuple[ActionRequest, ...]
    compute_time_ms: float
    terminated: bool = False

    @field_validator("compute_time_ms", mode="before")
    @classmethod
    def validate_compute_time(cls, v: Any) -> Any:
        """Require a real number; booleans and numeric strings are rejected."""
        if isinstance(v, bool) or not isinstance(v, int | float):
            raise ValueError("computeTimeMs must be a number")
        return v


class SandboxError(WireModel):
    code: SandboxErrorCode
    message: str
    stack: str | None = None


class StepExecutionResult(WireModel):
    """Outcome of one sandboxed step. Exactly one of output/error is set."""

    output: StepOutput | None = None
    error: SandboxError | None = None
    actual_compute_ms: float
    compute_budget_exceeded: bool

    @property
    def actions(self) -> tuple[ActionRequest, ...]:
        """Actions to process; empty for any failed step."""
        if self.error is not None or self.output is None:
            return ()
        return self.output.actions


class ActionRejection(WireModel):
    code: ActionRejectionCode
    message: str


class ActionResult(WireModel):
    """Per-action outcome. ``energy_cost`` is 0 whenever the action was rejected."""

    executed: bool
    energy_cost: float = 0.0
    result: Any = None
    rejection: ActionRejection | None = None


class ActionWindowEntry(WireModel):
    """One executed action recorded for rate limiting."""

    tick: int
    type: Capability


class ActionWindowState(WireModel):
    """Sliding log of executed actions.

    Recomputed from scratch on every update rather than patched in place.
    """

    actions: tuple[ActionWindowEntry, ...] = ()
    window_start: int = 0


class ProcessResult(WireModel):
    """Outcome of processing one batch of actions."""

    results: tuple[ActionResult, ...]
    total_cost: float
    updated_window: ActionWindowState

    @property
    def executed_count(self) -> int:
        return sum(1 for r in self.results if r.executed)

    @property
    def rejected_count(self) -> int:
        return len(self.results) - self.executed_count
