"""Unit tests for sandbox contexts and the sliding action window."""

import pytest

from warden.manifest import ActionRateLimit, Capability
from warden.sandbox import (
    ActionRequest,
    ActionWindowEntry,
    ActionWindowState,
    create_sandbox_context,
    update_action_window,
    validate_action,
    would_exceed_rate_limit,
)
from warden.sandbox.types import ProcessResult
from warden.utils.errors import ActionRejectionCode


def _window(*ticks, window_start=0):
    return ActionWindowState(
        actions=tuple(ActionWindowEntry(tick=t, type=Capability.MOVE) for t in ticks),
        window_start=window_start,
    )


class TestCreateSandboxContext:
    """Test initial context state."""

    def test_initial_state(self, granted):
        context = create_sandbox_context("agent-1", granted, 42)

        assert context.agent_id == "agent-1"
        assert context.granted is granted
        assert context.current_tick == 42
        assert context.compute_used_ms == 0
        assert context.action_window.actions == ()
        assert context.action_window.window_start == 42

    def test_shard_follows_grant(self, make_granted):
        context = create_sandbox_context(
            "agent-1", make_granted(in_quarantine=True, shard_id="lab"), 0
        )

        assert context.is_quarantined() is True
        assert context.quarantine_shard() == "lab"

    def test_not_quarantined(self, granted):
        context = create_sandbox_context("agent-1", granted, 0)

        assert context.is_quarantined() is False
        assert context.quarantine_shard() is None

    def test_begin_tick_resets_compute(self, granted):
        context = create_sandbox_context("agent-1", granted, 0)
        context.record_compute(4.5)
        context.record_compute(1.5)
        assert context.compute_used_ms == 6.0

        context.begin_tick(1)

        assert context.current_tick == 1
        assert context.compute_used_ms == 0

    def test_apply_stores_window(self, granted):
        context = create_sandbox_context("agent-1", granted, 0)
        window = _window(3, 4)

        context.apply(ProcessResult(results=(), total_cost=0, updated_window=window))

        assert context.action_window is window

    def test_step_context_hides_window(self, granted):
        context = create_sandbox_context("agent-1", granted, 0)

        visible = context.step_context()

        assert visible.agent_id == "agent-1"
        assert visible.granted == granted
        assert not hasattr(visible, "action_window")


class TestUpdateActionWindow:
    """Test sliding window maintenance."""

    def test_drops_entries_before_window_start(self):
        window = update_action_window(_window(1, 5, 10), current_tick=14, window_ticks=5)

        assert [entry.tick for entry in window.actions] == [10]
        assert window.window_start == 9

    def test_keeps_entry_at_boundary(self):
        window = update_action_window(_window(9), current_tick=14, window_ticks=5)

        assert [entry.tick for entry in window.actions] == [9]

    def test_window_start_never_negative(self):
        window = update_action_window(_window(0), current_tick=3, window_ticks=200)

        assert window.window_start == 0
        assert len(window.actions) == 1

    def test_appends_new_actions_at_current_tick(self):
        window = update_action_window(
            _window(),
            current_tick=7,
            window_ticks=10,
            new_actions=[ActionRequest(type=Capability.SENSE), Capability.MOVE],
        )

        assert window.actions == (
            ActionWindowEntry(tick=7, type=Capability.SENSE),
            ActionWindowEntry(tick=7, type=Capability.MOVE),
        )

    def test_does_not_modify_input(self):
        original = _window(1, 2)

        update_action_window(original, current_tick=100, window_ticks=5)

        assert len(original.actions) == 2


class TestRateLimit:
    """Test rate limit checks."""

    def test_under_limit(self, make_granted):
        granted = make_granted(
            max_actions_per_window=ActionRateLimit(window_ticks=10, max=3)
        )

        assert would_exceed_rate_limit(_window(1, 2), granted) is False

    def test_at_limit(self, make_granted):
        granted = make_granted(
            max_actions_per_window=ActionRateLimit(window_ticks=10, max=2)
        )

        assert would_exceed_rate_limit(_window(1, 2), granted) is True

    def test_expired_entries_do_not_count(self, make_granted):
        granted = make_granted(
            max_actions_per_window=ActionRateLimit(window_ticks=10, max=2)
        )

        assert would_exceed_rate_limit(_window(1, 2), granted, current_tick=15) is False

    def test_zero_max_blocks_everything(self, make_granted):
        granted = make_granted(
            max_actions_per_window=ActionRateLimit(window_ticks=10, max=0)
        )

        assert would_exceed_rate_limit(_window(), granted) is True


class TestValidateAction:
    """Test capability and rate limit gating of single actions."""

    def test_granted_action_passes(self, granted):
        context = create_sandbox_context("agent-1", granted, 0)

        assert validate_action(ActionRequest(type="MOVE"), context) is None

    def test_ungranted_capability(self, granted):
        context = create_sandbox_context("agent-1", granted, 0)

        rejection = validate_action(ActionRequest(type="PROPOSE_PACT"), context)

        assert rejection.code == ActionRejectionCode.CAPABILITY_NOT_GRANTED
        assert rejection.message == "Capability PROPOSE_PACT not granted"

    def test_unknown_action_type(self, granted):
        context = create_sandbox_context("agent-1", granted, 0)

        rejection = validate_action(ActionRequest(type="TELEPORT"), context)

        assert rejection.code == ActionRejectionCode.CAPABILITY_NOT_GRANTED

    def test_capability_checked_before_rate_limit(self, make_granted):
        granted = make_granted(
            max_actions_per_window=ActionRateLimit(window_ticks=10, max=0)
        )
        context = create_sandbox_context("agent-1", granted, 0)

        rejection = validate_action(ActionRequest(type="INQUIRY"), context)

        assert rejection.code == ActionRejectionCode.CAPABILITY_NOT_GRANTED

    def test_rate_limited(self, make_granted):
        granted = make_granted(
            max_actions_per_window=ActionRateLimit(window_ticks=200, max=1)
        )
        context = create_sandbox_context("agent-1", granted, 100)
        context.action_window = _window(100)
        context.begin_tick(101)

        rejection = validate_action(ActionRequest(type="MOVE"), context)

        assert rejection.code == ActionRejectionCode.RATE_LIMIT_EXCEEDED
        assert rejection.message == "Rate limit exceeded: 1 actions per 200 ticks"

    @pytest.mark.parametrize(
        "params",
        [
            {},
            {"capabilities": ["PROPOSE_PACT"]},
            {"rateLimit": 1000, "max": 1000},
            {"type": "SENSE", "energyCost": 0},
        ],
    )
    def test_params_do_not_affect_decision(self, granted, params):
        context = create_sandbox_context("agent-1", granted, 0)

        allowed = validate_action(ActionRequest(type="MOVE", params=params), context)
        denied = validate_action(
            ActionRequest(type="PROPOSE_PACT", params=params), context
        )

        assert allowed is None
        assert denied.code == ActionRejectionCode.CAPABILITY_NOT_GRANTED
