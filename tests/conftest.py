"""Shared fixtures for warden tests."""

import copy
from typing import Any

import pytest

from warden.manifest import (
    ActionRateLimit,
    Capability,
    EnergyBudget,
    GrantedCapabilities,
    ObservationBudget,
)

VALID_MANIFEST: dict[str, Any] = {
    "manifestVersion": "1.0",
    "agent": {
        "name": "test-agent",
        "kind": "WASM",
        "entry": "./agent.wasm",
    },
    "requested": {
        "capabilities": ["MOVE", "SENSE"],
    },
}


def _build_granted(**overrides: Any) -> GrantedCapabilities:
    """Build a grant with test-friendly defaults."""
    values: dict[str, Any] = {
        "capabilities": (Capability.MOVE, Capability.SENSE),
        "max_actions_per_window": ActionRateLimit(window_ticks=200, max=5),
        "compute_budget_ms_per_tick": 10.0,
        "observation_budget": ObservationBudget(
            max_cells=9, max_fields=12, noise_floor=0.2
        ),
        "energy_budget": EnergyBudget(max_per_tick=20, max_reserve=200),
        "in_quarantine": False,
    }
    values.update(overrides)
    return GrantedCapabilities(**values)


@pytest.fixture
def manifest_document() -> dict[str, Any]:
    """A fresh copy of a minimal valid manifest document."""
    return copy.deepcopy(VALID_MANIFEST)


@pytest.fixture
def make_granted():
    """Factory for grants; keyword arguments override single fields."""
    return _build_granted


@pytest.fixture
def granted() -> GrantedCapabilities:
    return _build_granted()
