"""Per-tick orchestration: degrade, execute, process.

Ticks of one agent are serialized by a per-agent lock; ticks of different
agents run concurrently and share nothing but the price function.
"""

import asyncio
import random
import time
import weakref
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import Field

from warden.config import Config
from warden.manifest.types import WireModel
from warden.sandbox.actions import PriceFn, process_actions
from warden.sandbox.context import SandboxContext
from warden.sandbox.executor import AgentStepFn, SandboxExecutor
from warden.sandbox.observation import degrade_observation
from warden.sandbox.types import (
    AgentStepState,
    Location,
    ObservedCell,
    ProcessResult,
    StepExecutionResult,
    StepInput,
)
from warden.utils.telemetry import async_performance_timer, get_logger


class TickOutcome(WireModel):
    """Everything that happened to one agent in one tick."""

    agent_id: str
    tick: int
    execution: StepExecutionResult
    processed: ProcessResult
    total_cost: float
    terminated: bool = False

    @property
    def failed(self) -> bool:
        return self.execution.error is not None


class AgentTickTotals(WireModel):
    executed: int = 0
    rejected: int = 0
    total_cost: float = 0.0
    step_error: str | None = None


class TickSummary(WireModel):
    """Aggregate of a batch of concurrently run agent ticks."""

    tick: int
    outcomes: dict[str, TickOutcome] = Field(default_factory=dict)
    totals: dict[str, AgentTickTotals] = Field(default_factory=dict)
    errors: dict[str, str] = Field(
        default_factory=dict, description="Host-side failures by agent id"
    )
    processing_time: float = Field(description="Wall time for the batch in seconds")

    @property
    def total_cost(self) -> float:
        return sum(t.total_cost for t in self.totals.values())


@dataclass
class TickJob:
    """Inputs for one agent's tick."""

    context: SandboxContext
    step_fn: AgentStepFn
    energy: float
    location: Location
    raw_cells: Sequence[ObservedCell] = field(default_factory=tuple)


class TickPipeline:
    """Runs agent ticks through the sandbox."""

    def __init__(
        self,
        executor: SandboxExecutor,
        price_fn: PriceFn,
        rng: random.Random | None = None,
        logger: Any | None = None,
    ):
        """Initialize tick pipeline.

        Args:
            executor: Executor used for every step
            price_fn: World pricing function for actions
            rng: Random source for observation noise
            logger: Structured logger (defaults to ``warden.pipeline``)
        """
        self.executor = executor
        self.price_fn = price_fn
        self.rng = rng
        self._logger = logger or get_logger("warden.pipeline")
        # Entries vanish once no tick for the agent is running or waiting
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @classmethod
    def from_config(
        cls, config: Config, price_fn: PriceFn, logger: Any | None = None
    ) -> "TickPipeline":
        """Build a pipeline from the sandbox section of a configuration."""
        seed = config.sandbox.noise_seed
        return cls(
            SandboxExecutor(overhead_ms=config.sandbox.scheduling_overhead_ms),
            price_fn,
            rng=random.Random(seed) if seed is not None else None,
            logger=logger,
        )

    def _lock_for(self, agent_id: str) -> asyncio.Lock:
        lock = self._locks.get(agent_id)
        if lock is None:
            lock = self._locks[agent_id] = asyncio.Lock()
        return lock

    async def run_tick(
        self,
        context: SandboxContext,
        step_fn: AgentStepFn,
        raw_cells: Iterable[ObservedCell],
        energy: float,
        location: Location,
        tick: int,
    ) -> TickOutcome:
        """Run one tick for one agent and commit its action window.

        Energy available to actions is capped by the granted per-tick budget.
        A failed step executes no actions and costs nothing.
        """
        async with self._lock_for(context.agent_id):
            context.begin_tick(tick)
            granted = context.granted
            observation = degrade_observation(
                raw_cells, granted.observation_budget, self.rng
            )
            step_input = StepInput(
                state=AgentStepState(
                    energy=energy, location=location, tick=tick, observation=observation
                ),
                context=context.step_context(),
            )

            async with async_performance_timer(
                "agent_tick", agent_id=context.agent_id, tick=tick, logger=self._logger
            ):
                execution: StepExecutionResult = await self.executor.run(
                    context, step_fn, step_input
                )
                spendable = min(energy, granted.energy_budget.max_per_tick)
                processed = process_actions(
                    execution.actions,
                    context,
                    spendable,
                    self.price_fn,
                    current_tick=tick,
                )
                context.apply(processed)

            if execution.error is not None:
                self._logger.info(
                    "Step produced no actions",
                    agent_id=context.agent_id,
                    tick=tick,
                    code=execution.error.code.value,
                )

            return TickOutcome(
                agent_id=context.agent_id,
                tick=tick,
                execution=execution,
                processed=processed,
                total_cost=processed.total_cost,
                terminated=execution.output.terminated if execution.output else False,
            )

    async def run_ticks(self, jobs: Sequence[TickJob], tick: int) -> TickSummary:
        """Run one tick for many agents concurrently.

        Results are keyed by agent id, so completion order does not matter.
        A host-side failure for one agent is recorded and does not affect the
        others.
        """
        start_time = time.perf_counter()
        tasks = [
            asyncio.create_task(
                self.run_tick(
                    job.context,
                    job.step_fn,
                    job.raw_cells,
                    job.energy,
                    job.location,
                    tick,
                )
            )
            for job in jobs
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes: dict[str, TickOutcome] = {}
        totals: dict[str, AgentTickTotals] = {}
        errors: dict[str, str] = {}
        for job, result in zip(jobs, results, strict=True):
            agent_id = job.context.agent_id
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                errors[agent_id] = f"{type(result).__name__}: {result}"
                self._logger.error(
                    "Agent tick failed", agent_id=agent_id, tick=tick, error=str(result)
                )
                continue

            outcomes[agent_id] = result
            totals[agent_id] = AgentTickTotals(
                executed=result.processed.executed_count,
                rejected=result.processed.rejected_count,
                total_cost=result.total_cost,
                step_error=result.execution.error.code.value
                if result.execution.error
                else None,
            )

        return TickSummary(
            tick=tick,
            outcomes=outcomes,
            totals=totals,
            errors=errors,
            processing_time=time.perf_counter() - start_time,
        )
