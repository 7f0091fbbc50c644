"""Per-agent enforcement state and sliding-window rate limiting.

A ``SandboxContext`` is owned by exactly one agent. Callers serialize ticks
per agent; contexts of different agents share nothing and need no locking.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from warden.manifest.models import GrantedCapabilities
from warden.manifest.types import Capability
from warden.sandbox.types import (
    ActionRejection,
    ActionRequest,
    ActionWindowEntry,
    ActionWindowState,
    ProcessResult,
    StepContext,
)
from warden.utils.errors import ActionRejectionCode


@dataclass
class SandboxContext:
    """Runtime enforcement state for one admitted agent.

    Attributes:
        granted: Capabilities and budgets from admission
        agent_id: Opaque agent identifier
        shard_id: Quarantine shard, if any
        action_window: Executed actions inside the rate-limit window
        compute_used_ms: Host-measured compute time used this tick
        current_tick: Tick currently being executed
    """

    granted: GrantedCapabilities
    agent_id: str
    shard_id: str | None = None
    action_window: ActionWindowState = field(default_factory=ActionWindowState)
    compute_used_ms: float = 0.0
    current_tick: int = 0

    def begin_tick(self, tick: int) -> None:
        """Start a new tick: record it and reset compute accounting."""
        self.current_tick = tick
        self.compute_used_ms = 0.0

    def record_compute(self, elapsed_ms: float) -> None:
        self.compute_used_ms += elapsed_ms

    def apply(self, result: ProcessResult) -> None:
        """Store the window produced by the action processor."""
        self.action_window = result.updated_window

    def is_quarantined(self) -> bool:
        return self.granted.in_quarantine

    def quarantine_shard(self) -> str | None:
        return self.shard_id

    def step_context(self) -> StepContext:
        """The slice of this context an agent is allowed to see."""
        return StepContext(granted=self.granted, agent_id=self.agent_id)


def create_sandbox_context(
    agent_id: str, granted: GrantedCapabilities, current_tick: int
) -> SandboxContext:
    """Create the initial sandbox context for an admitted agent."""
    return SandboxContext(
        granted=granted,
        agent_id=agent_id,
        shard_id=granted.shard_id,
        action_window=ActionWindowState(actions=(), window_start=current_tick),
        current_tick=current_tick,
    )


def update_action_window(
    window: ActionWindowState,
    current_tick: int,
    window_ticks: int,
    new_actions: Iterable[ActionRequest | Capability] = (),
) -> ActionWindowState:
    """Slide the window to ``current_tick`` and record new executed actions.

    The window is rebuilt from the previous entries each time: entries older
    than ``current_tick - window_ticks`` are dropped, new actions are stamped
    with ``current_tick``.

    Args:
        window: Previous window state
        current_tick: Tick being executed
        window_ticks: Window length from the grant
        new_actions: Executed actions to append

    Returns:
        New window state
    """
    window_start = max(0, current_tick - window_ticks)
    kept = [entry for entry in window.actions if entry.tick >= window_start]

    for action in new_actions:
        capability = action if isinstance(action, Capability) else action.capability
        if capability is None:
            continue
        kept.append(ActionWindowEntry(tick=current_tick, type=capability))

    return ActionWindowState(actions=tuple(kept), window_start=window_start)


def would_exceed_rate_limit(
    window: ActionWindowState,
    granted: GrantedCapabilities,
    current_tick: int | None = None,
) -> bool:
    """Check whether one more action would break the granted rate limit.

    Args:
        window: Current window state
        granted: Grant holding the rate limit
        current_tick: When given, the window is first recomputed for this tick

    Returns:
        True if the window already holds ``max`` or more actions
    """
    limit = granted.max_actions_per_window
    if current_tick is not None:
        window = update_action_window(window, current_tick, limit.window_ticks)
    return len(window.actions) >= limit.max


def validate_action(
    action: ActionRequest,
    context: SandboxContext,
    window: ActionWindowState | None = None,
    current_tick: int | None = None,
) -> ActionRejection | None:
    """Check an action against the capability grant and the rate limit.

    Only ``action.type`` takes part in the decision; ``action.params`` is
    never read.

    Args:
        action: Requested action
        context: Agent's sandbox context
        window: Window to check against (defaults to the context's window)
        current_tick: Tick to recompute the window for (defaults to the context's tick)

    Returns:
        Rejection, or None if the action may proceed to pricing
    """
    granted = context.granted
    capability = action.capability
    if capability is None or not granted.allows(capability):
        return ActionRejection(
            code=ActionRejectionCode.CAPABILITY_NOT_GRANTED,
            message=f"Capability {action.type} not granted",
        )

    if window is None:
        window = context.action_window
    if current_tick is None:
        current_tick = context.current_tick

    if would_exceed_rate_limit(window, granted, current_tick):
        limit = granted.max_actions_per_window
        return ActionRejection(
            code=ActionRejectionCode.RATE_LIMIT_EXCEEDED,
            message=(
                f"Rate limit exceeded: {limit.max} actions per "
                f"{limit.window_ticks} ticks"
            ),
        )

    return None
