"""Observation degradation.

Agents never see true world state. Before a step runs, the raw cells around
the agent are truncated to the granted cell and field budget and every
numeric reading is perturbed by at least the granted noise floor.
"""

import math
import random
from collections.abc import Iterable

from warden.manifest.types import ObservationBudget
from warden.sandbox.types import DegradedCell, DegradedObservation, ObservedCell

_default_rng = random.Random()


def _noise_multiplier(noise_floor: float, rng: random.Random) -> float:
    """Draw one factor uniformly from [1 - noise_floor, 1 + noise_floor]."""
    if noise_floor == 0:
        return 1.0
    return 1.0 + (rng.random() * 2.0 - 1.0) * noise_floor


def _round_half_up(value: float) -> int:
    # 2.5 -> 3, not 2
    return math.floor(value + 0.5)


def degrade_cell(
    cell: ObservedCell, budget: ObservationBudget, rng: random.Random
) -> DegradedCell:
    """Apply field limit and noise to a single cell.

    One multiplier is drawn per cell and applied to both entity count and
    trace density, so readings within a cell stay consistent with each other.
    """
    multiplier = _noise_multiplier(budget.noise_floor, rng)

    keys = list(cell.fields)
    kept = {key: cell.fields[key] for key in keys[: budget.max_fields]}

    return DegradedCell(
        dx=cell.dx,
        dy=cell.dy,
        zone=cell.zone,
        entity_count=max(0, _round_half_up(cell.entity_count * multiplier)),
        trace_density=max(0.0, cell.trace_density * multiplier),
        fields=kept,
        fields_omitted=len(keys) - len(kept),
    )


def degrade_observation(
    raw_cells: Iterable[ObservedCell],
    budget: ObservationBudget,
    rng: random.Random | None = None,
) -> DegradedObservation:
    """Reduce raw world cells to what the agent is allowed to observe.

    Cells are truncated in input order, so callers should sort them by
    relevance (nearest first) before calling.

    Args:
        raw_cells: True world cells relative to the agent
        budget: Granted observation budget
        rng: Random source for noise (defaults to a module-level generator)

    Returns:
        DegradedObservation with at most ``budget.max_cells`` cells
    """
    if rng is None:
        rng = _default_rng

    cells = list(raw_cells)
    limited = cells[: budget.max_cells]
    dropped = len(cells) - len(limited)

    return DegradedObservation(
        cells=tuple(degrade_cell(cell, budget, rng) for cell in limited),
        noise_applied=budget.noise_floor,
        fields_omitted=dropped,
        cells_omitted=dropped,
    )
