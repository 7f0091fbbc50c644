"""Sandbox enforcement: contexts, observation degradation, step execution and action processing."""

from .actions import PriceFn, process_actions
from .context import (
    SandboxContext,
    create_sandbox_context,
    update_action_window,
    validate_action,
    would_exceed_rate_limit,
)
from .executor import (
    SCHEDULING_OVERHEAD_MS,
    AgentStepFn,
    SandboxExecutor,
    coerce_step_output,
    execute_step,
)
from .observation import degrade_observation
from .pipeline import AgentTickTotals, TickJob, TickOutcome, TickPipeline, TickSummary
from .types import (
    ActionRejection,
    ActionRequest,
    ActionResult,
    ActionWindowEntry,
    ActionWindowState,
    AgentStepState,
    DegradedCell,
    DegradedObservation,
    Location,
    ObservedCell,
    ProcessResult,
    SandboxError,
    StepContext,
    StepExecutionResult,
    StepInput,
    StepOutput,
)

__all__ = [
    "SCHEDULING_OVERHEAD_MS",
    "ActionRejection",
    "ActionRequest",
    "ActionResult",
    "ActionWindowEntry",
    "ActionWindowState",
    "AgentStepFn",
    "AgentStepState",
    "AgentTickTotals",
    "DegradedCell",
    "DegradedObservation",
    "Location",
    "ObservedCell",
    "PriceFn",
    "ProcessResult",
    "SandboxContext",
    "SandboxError",
    "SandboxExecutor",
    "StepContext",
    "StepExecutionResult",
    "StepInput",
    "StepOutput",
    "TickJob",
    "TickOutcome",
    "TickPipeline",
    "TickSummary",
    "coerce_step_output",
    "create_sandbox_context",
    "degrade_observation",
    "execute_step",
    "process_actions",
    "update_action_window",
    "validate_action",
    "would_exceed_rate_limit",
]
