"""Sandboxed step execution.

Each agent step races a deadline of the granted compute budget plus a small
scheduling allowance. Whatever the agent does (raise, exit, hang, return
garbage), the host gets back a ``StepExecutionResult`` and the tick goes on.

Every step runs on its own daemon worker thread, so neither a busy loop nor a
blocking call can stall the host event loop. Coroutine steps, and awaitables
returned by plain steps, are driven by a private event loop on that thread
and cancelled there when they lose the race. A plain function that loses the
race cannot be interrupted; its thread is detached, counted in
``warden_detached_step_workers`` and whatever it eventually returns is
discarded.
"""

import asyncio
import inspect
import threading
import time
import traceback
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from warden.sandbox.context import SandboxContext
from warden.sandbox.types import (
    SandboxError,
    StepExecutionResult,
    StepInput,
    StepOutput,
)
from warden.utils.errors import (
    InvalidStepOutputError,
    SandboxErrorCode,
    StepTimeoutError,
)
from warden.utils.telemetry import (
    DETACHED_STEP_WORKERS,
    STEP_COMPUTE_SECONDS,
    STEP_OUTCOMES,
    get_logger,
    truncate_text,
)

# Allowance for task scheduling on top of the granted budget
SCHEDULING_OVERHEAD_MS = 5.0

AgentStepFn = Callable[[StepInput], Any | Awaitable[Any]]


@dataclass
class _Outcome:
    """What a step produced: a value, or the exception it raised."""

    value: Any = None
    error: BaseException | None = None


class _StepWorker:
    """Runs one agent step on a daemon thread.

    The outcome is posted back to the host loop through ``future``. Anything
    the step raises, ``SystemExit`` and ``KeyboardInterrupt`` included, ends
    up in the outcome and never on the host.
    """

    def __init__(self, step_fn: AgentStepFn, step_input: StepInput):
        self._step_fn = step_fn
        self._step_input = step_input
        self._host_loop = asyncio.get_running_loop()
        self.future: asyncio.Future = self._host_loop.create_future()

        self._lock = threading.Lock()
        self._finished = False
        self._detached = False
        self._step_loop: asyncio.AbstractEventLoop | None = None
        self._step_task: asyncio.Future | None = None

        self._thread = threading.Thread(
            target=self._run, name="warden-step", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def _call(self) -> Any:
        value = self._step_fn(self._step_input)
        if inspect.isawaitable(value):
            return asyncio.run(self._drive(value))
        return value

    async def _drive(self, awaitable: Awaitable[Any]) -> Any:
        self._step_loop = asyncio.get_running_loop()
        self._step_task = asyncio.ensure_future(awaitable)
        with self._lock:
            if self._detached:
                self._step_task.cancel()
        return await self._step_task

    def _run(self) -> None:
        try:
            outcome = _Outcome(value=self._call())
        except BaseException as exc:
            outcome = _Outcome(error=exc)

        with self._lock:
            self._finished = True
            if self._detached:
                DETACHED_STEP_WORKERS.dec()
                return
        try:
            self._host_loop.call_soon_threadsafe(self._deliver, outcome)
        except RuntimeError:
            # Host loop already closed; a late result has nowhere to go
            pass

    def _deliver(self, outcome: _Outcome) -> None:
        if not self.future.done():
            self.future.set_result(outcome)

    def detach(self) -> None:
        """Give up on the step; cancel it if it is a coroutine."""
        if not self.future.done():
            self.future.cancel()
        with self._lock:
            if self._finished or self._detached:
                return
            self._detached = True
            DETACHED_STEP_WORKERS.inc()
            loop, task = self._step_loop, self._step_task
        if loop is not None and task is not None:
            try:
                loop.call_soon_threadsafe(task.cancel)
            except RuntimeError:
                # Step loop already closed
                pass


async def _race(
    step_fn: AgentStepFn, step_input: StepInput, timeout_s: float
) -> _Outcome | None:
    """Run a step on a worker; None means the deadline won."""
    worker = _StepWorker(step_fn, step_input)
    worker.start()
    try:
        done, _ = await asyncio.wait({worker.future}, timeout=max(timeout_s, 0.0))
    finally:
        if not worker.future.done():
            worker.detach()
    if not done:
        return None
    return worker.future.result()


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def coerce_step_output(raw: Any) -> StepOutput:
    """Check the shape of what a step returned and convert it.

    Accepts a ``StepOutput``, another pydantic model or a mapping carrying a
    list of actions and a numeric compute time (snake_case or camelCase).

    Raises:
        InvalidStepOutputError: If the value does not have the required shape
    """
    if isinstance(raw, StepOutput):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if not isinstance(raw, Mapping):
        raise InvalidStepOutputError(f"got {type(raw).__name__}")

    actions = raw.get("actions")
    if not isinstance(actions, list | tuple):
        raise InvalidStepOutputError("actions must be a list")

    compute_time = raw.get("compute_time_ms", raw.get("computeTimeMs"))
    if isinstance(compute_time, bool) or not isinstance(compute_time, int | float):
        raise InvalidStepOutputError("computeTimeMs must be a number")

    try:
        return StepOutput.model_validate(
            {
                "actions": list(actions),
                "compute_time_ms": compute_time,
                "terminated": raw.get("terminated", False),
            }
        )
    except ValidationError as exc:
        raise InvalidStepOutputError(_format_validation_error(exc)) from exc


def _error_result(
    code: SandboxErrorCode,
    message: str,
    elapsed_ms: float,
    budget_exceeded: bool,
    stack: str | None = None,
) -> StepExecutionResult:
    return StepExecutionResult(
        error=SandboxError(code=code, message=message, stack=stack),
        actual_compute_ms=elapsed_ms,
        compute_budget_exceeded=budget_exceeded,
    )


async def execute_step(
    step_fn: AgentStepFn,
    step_input: StepInput,
    *,
    budget_ms: float | None = None,
    overhead_ms: float = SCHEDULING_OVERHEAD_MS,
    logger: Any | None = None,
) -> StepExecutionResult:
    """Run one agent step against its compute deadline.

    Never raises for anything the agent does: exceptions of every kind,
    ``SystemExit`` included, come back as a CRASH result. Only cancellation
    of the caller propagates. An outcome that arrives after the deadline is
    reported as TIMEOUT and its output is discarded.

    Args:
        step_fn: Agent step function, plain or coroutine
        step_input: Input handed to the agent
        budget_ms: Compute budget (defaults to the grant's per-tick budget)
        overhead_ms: Scheduling allowance added to the deadline
        logger: Structured logger (defaults to ``warden.executor``)

    Returns:
        StepExecutionResult with either ``output`` or ``error`` set
    """
    log = logger or get_logger("warden.executor")
    if budget_ms is None:
        budget_ms = step_input.context.granted.compute_budget_ms_per_tick
    agent_id = step_input.context.agent_id
    tick = step_input.state.tick

    timeout_s = (budget_ms + overhead_ms) / 1000.0
    start = time.perf_counter()
    outcome = await _race(step_fn, step_input, timeout_s)
    elapsed_ms = (time.perf_counter() - start) * 1000.0

    if outcome is None or elapsed_ms > budget_ms + overhead_ms:
        timeout = StepTimeoutError(budget_ms, elapsed_ms)
        log.warning(
            "Step timed out",
            agent_id=agent_id,
            tick=tick,
            budget_ms=budget_ms,
            elapsed_ms=elapsed_ms,
        )
        return _error_result(SandboxErrorCode.TIMEOUT, str(timeout), elapsed_ms, True)

    budget_exceeded = elapsed_ms > budget_ms

    if outcome.error is not None:
        error = outcome.error
        message = str(error) or type(error).__name__
        stack = "".join(traceback.format_exception(error))
        log.warning(
            "Step crashed",
            agent_id=agent_id,
            tick=tick,
            error_type=type(error).__name__,
            error=truncate_text(message),
            elapsed_ms=elapsed_ms,
        )
        return _error_result(
            SandboxErrorCode.CRASH, message, elapsed_ms, budget_exceeded, stack
        )

    try:
        output = coerce_step_output(outcome.value)
    except InvalidStepOutputError as exc:
        log.warning(
            "Step returned invalid output",
            agent_id=agent_id,
            tick=tick,
            reason=truncate_text(exc.reason),
        )
        return _error_result(
            SandboxErrorCode.INVALID_OUTPUT, str(exc), elapsed_ms, budget_exceeded
        )

    # Self-reported time is informational only; enforcement uses host time
    log.debug(
        "Step completed",
        agent_id=agent_id,
        tick=tick,
        actions=len(output.actions),
        elapsed_ms=elapsed_ms,
        reported_compute_ms=output.compute_time_ms,
        compute_budget_exceeded=budget_exceeded,
    )
    return StepExecutionResult(
        output=output,
        actual_compute_ms=elapsed_ms,
        compute_budget_exceeded=budget_exceeded,
    )


def outcome_label(result: StepExecutionResult) -> str:
    """Metric label for a step result."""
    if result.error is not None:
        return result.error.code.value.lower()
    if result.compute_budget_exceeded:
        return "over_budget"
    return "ok"


class SandboxExecutor:
    """Runs agent steps for sandbox contexts and records what they cost.

    Measured host time is added to the context's compute accounting and
    exported as metrics; the context itself is otherwise untouched.
    """

    def __init__(
        self,
        overhead_ms: float = SCHEDULING_OVERHEAD_MS,
        logger: Any | None = None,
    ):
        """Initialize sandbox executor.

        Args:
            overhead_ms: Scheduling allowance added to every deadline
            logger: Structured logger (defaults to ``warden.executor``)
        """
        self.overhead_ms = overhead_ms
        self._logger = logger or get_logger("warden.executor")

    async def run(
        self,
        context: SandboxContext,
        step_fn: AgentStepFn,
        step_input: StepInput,
    ) -> StepExecutionResult:
        """Execute one step for ``context`` and account its compute time."""
        result = await execute_step(
            step_fn,
            step_input,
            budget_ms=context.granted.compute_budget_ms_per_tick,
            overhead_ms=self.overhead_ms,
            logger=self._logger.bind(agent_id=context.agent_id),
        )
        context.record_compute(result.actual_compute_ms)

        label = outcome_label(result)
        STEP_OUTCOMES.labels(outcome=label).inc()
        STEP_COMPUTE_SECONDS.labels(outcome=label).observe(
            result.actual_compute_ms / 1000.0
        )
        return result
