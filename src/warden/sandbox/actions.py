"""World-side processing of agent action requests.

Every action passes the same gates in the same order: capability, rate
limit, price, energy. Rejected actions cost nothing and do not stop the rest
of the batch. Only the action tag is consulted for decisions; ``params`` is
handed to the price function as a copy and is otherwise left alone.
"""

from collections.abc import Callable, Iterable
from typing import Any

from warden.sandbox.context import SandboxContext, update_action_window, validate_action
from warden.sandbox.types import (
    ActionRejection,
    ActionRequest,
    ActionResult,
    ProcessResult,
)
from warden.utils.errors import ActionRejectionCode
from warden.utils.telemetry import ACTION_DECISIONS, ENERGY_CHARGED, get_logger

PriceFn = Callable[[ActionRequest], float]


def _label(action: ActionRequest) -> str:
    capability = action.capability
    return capability.value if capability is not None else "unknown"


def _reject(
    action: ActionRequest, rejection: ActionRejection, logger: Any
) -> ActionResult:
    ACTION_DECISIONS.labels(
        capability=_label(action), decision=rejection.code.value.lower()
    ).inc()
    logger.debug(
        "Action rejected",
        action_type=_label(action),
        code=rejection.code.value,
        reason=rejection.message,
    )
    return ActionResult(executed=False, energy_cost=0.0, rejection=rejection)


def process_actions(
    actions: Iterable[ActionRequest],
    context: SandboxContext,
    current_energy: float,
    price_fn: PriceFn,
    *,
    current_tick: int | None = None,
    logger: Any | None = None,
) -> ProcessResult:
    """Decide which of an agent's requested actions execute and what they cost.

    The context is not modified; store ``updated_window`` back with
    ``SandboxContext.apply`` once the tick is committed.

    Args:
        actions: Requests in the order the agent emitted them
        context: Agent's sandbox context
        current_energy: Energy available at the start of the batch
        price_fn: World pricing function
        current_tick: Tick being executed (defaults to ``context.current_tick``)
        logger: Structured logger (defaults to ``warden.actions``)

    Returns:
        ProcessResult with one result per request, in request order
    """
    log = logger or get_logger("warden.actions", agent_id=context.agent_id)
    if current_tick is None:
        current_tick = context.current_tick
    window_ticks = context.granted.max_actions_per_window.window_ticks

    window = update_action_window(context.action_window, current_tick, window_ticks)
    remaining = current_energy
    total_cost = 0.0
    results: list[ActionResult] = []

    for action in actions:
        rejection = validate_action(action, context, window, current_tick)
        if rejection is not None:
            results.append(_reject(action, rejection, log))
            continue

        cost = price_fn(action.model_copy(deep=True))
        if cost > remaining:
            rejection = ActionRejection(
                code=ActionRejectionCode.INSUFFICIENT_ENERGY,
                message=f"Action requires {cost:g} energy, only {remaining:g} available",
            )
            results.append(_reject(action, rejection, log))
            continue

        remaining -= cost
        total_cost += cost
        window = update_action_window(window, current_tick, window_ticks, [action])
        results.append(ActionResult(executed=True, energy_cost=cost))

        ACTION_DECISIONS.labels(capability=_label(action), decision="executed").inc()
        if cost > 0:
            ENERGY_CHARGED.inc(cost)

    return ProcessResult(
        results=tuple(results), total_cost=total_cost, updated_window=window
    )
