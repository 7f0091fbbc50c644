"""Unit tests for action processing."""

import pytest
from structlog.testing import capture_logs

from warden.manifest import ActionRateLimit, Capability
from warden.sandbox import (
    ActionRequest,
    ActionWindowEntry,
    ActionWindowState,
    create_sandbox_context,
    process_actions,
)
from warden.utils.errors import ActionRejectionCode


def _flat(cost):
    return lambda action: cost


def _move(**params):
    return ActionRequest(type="MOVE", params=params)


@pytest.fixture
def context(granted):
    return create_sandbox_context("agent-1", granted, 100)


class TestEnergy:
    """Test energy accounting across a batch."""

    def test_stops_when_energy_runs_out(self, context):
        result = process_actions([_move(), _move(), _move()], context, 5, _flat(2))

        assert [r.executed for r in result.results] == [True, True, False]
        assert result.total_cost == 4
        rejection = result.results[2].rejection
        assert rejection.code == ActionRejectionCode.INSUFFICIENT_ENERGY
        assert rejection.message == "Action requires 2 energy, only 1 available"

    @pytest.mark.parametrize(
        ("energy", "cost", "expected"), [(10, 3, 3), (9, 3, 3), (2, 3, 0), (5, 5, 1)]
    )
    def test_executes_floor_of_energy_over_cost(
        self, make_granted, energy, cost, expected
    ):
        grant = make_granted(
            max_actions_per_window=ActionRateLimit(window_ticks=10, max=100)
        )
        context = create_sandbox_context("agent-1", grant, 1)

        result = process_actions([_move()] * 6, context, energy, _flat(cost))

        assert sum(r.executed for r in result.results) == expected
        assert result.total_cost == expected * cost

    def test_later_cheap_action_can_still_execute(self, context):
        """A rejection does not end the batch."""
        prices = {"MOVE": 4, "SENSE": 1}

        result = process_actions(
            [_move(), _move(), ActionRequest(type="SENSE")],
            context,
            5,
            lambda action: prices[action.type],
        )

        assert [r.executed for r in result.results] == [True, False, True]
        assert result.total_cost == 5

    def test_free_actions_always_fit(self, context):
        result = process_actions([_move(), _move()], context, 0, _flat(0))

        assert all(r.executed for r in result.results)
        assert result.total_cost == 0

    def test_rejections_cost_nothing(self, context):
        result = process_actions(
            [ActionRequest(type="INQUIRY"), _move(), _move()], context, 3, _flat(2)
        )

        for action_result in result.results:
            if not action_result.executed:
                assert action_result.energy_cost == 0
        assert result.total_cost == sum(r.energy_cost for r in result.results)


class TestCapabilities:
    """Test capability gating."""

    def test_rejects_ungranted_capability(self, context):
        result = process_actions(
            [ActionRequest(type=Capability.PROPOSE_PACT)], context, 100, _flat(1)
        )

        rejection = result.results[0].rejection
        assert rejection.code == ActionRejectionCode.CAPABILITY_NOT_GRANTED
        assert rejection.message == "Capability PROPOSE_PACT not granted"

    def test_rejects_unknown_tag(self, context):
        result = process_actions(
            [ActionRequest(type="TELEPORT")], context, 100, _flat(1)
        )

        assert result.results[0].executed is False
        assert (
            result.results[0].rejection.code
            == ActionRejectionCode.CAPABILITY_NOT_GRANTED
        )
        assert result.updated_window.actions == ()

    def test_params_cannot_grant_capabilities(self, context):
        action = ActionRequest(
            type="PROPOSE_PACT",
            params={"capabilities": ["PROPOSE_PACT"], "granted": True},
        )

        result = process_actions([action], context, 100, _flat(1))

        assert result.results[0].executed is False

    def test_ungranted_action_is_not_priced(self, context):
        priced = []

        process_actions(
            [ActionRequest(type="INQUIRY")],
            context,
            100,
            lambda action: priced.append(action) or 1,
        )

        assert priced == []


class TestRateLimit:
    """Test rate limiting within and across batches."""

    def test_limits_actions_within_batch(self, make_granted):
        grant = make_granted(
            max_actions_per_window=ActionRateLimit(window_ticks=10, max=2)
        )
        context = create_sandbox_context("agent-1", grant, 1)

        result = process_actions([_move()] * 4, context, 100, _flat(1))

        assert [r.executed for r in result.results] == [True, True, False, False]
        assert result.results[2].rejection.code == (
            ActionRejectionCode.RATE_LIMIT_EXCEEDED
        )
        assert result.results[2].rejection.message == (
            "Rate limit exceeded: 2 actions per 10 ticks"
        )

    def test_rejected_actions_do_not_count(self, make_granted):
        grant = make_granted(
            max_actions_per_window=ActionRateLimit(window_ticks=10, max=2)
        )
        context = create_sandbox_context("agent-1", grant, 1)

        result = process_actions(
            [ActionRequest(type="INQUIRY"), _move(), _move()], context, 100, _flat(1)
        )

        assert [r.executed for r in result.results] == [False, True, True]
        assert len(result.updated_window.actions) == 2

    def test_unaffordable_actions_do_not_count(self, make_granted):
        grant = make_granted(
            max_actions_per_window=ActionRateLimit(window_ticks=10, max=1)
        )
        context = create_sandbox_context("agent-1", grant, 1)
        prices = {"MOVE": 50, "SENSE": 1}

        result = process_actions(
            [_move(), ActionRequest(type="SENSE")],
            context,
            10,
            lambda action: prices[action.type],
        )

        assert [r.executed for r in result.results] == [False, True]

    def test_limit_carries_across_ticks(self, make_granted):
        grant = make_granted(
            max_actions_per_window=ActionRateLimit(window_ticks=200, max=1)
        )
        context = create_sandbox_context("agent-1", grant, 100)

        first = process_actions([_move()], context, 100, _flat(1), current_tick=100)
        context.apply(first)
        second = process_actions([_move()], context, 100, _flat(1), current_tick=101)

        assert first.results[0].executed is True
        assert second.results[0].rejection.code == (
            ActionRejectionCode.RATE_LIMIT_EXCEEDED
        )

    def test_old_entries_slide_out(self, make_granted):
        grant = make_granted(
            max_actions_per_window=ActionRateLimit(window_ticks=5, max=1)
        )
        context = create_sandbox_context("agent-1", grant, 0)
        context.action_window = ActionWindowState(
            actions=(ActionWindowEntry(tick=1, type=Capability.MOVE),),
            window_start=0,
        )

        result = process_actions([_move()], context, 100, _flat(1), current_tick=10)

        assert result.results[0].executed is True
        assert result.updated_window.window_start == 5
        assert [e.tick for e in result.updated_window.actions] == [10]

    def test_defaults_to_context_tick(self, context):
        result = process_actions([_move()], context, 100, _flat(1))

        assert result.updated_window.actions[0].tick == context.current_tick


class TestAdversarialParams:
    """Test that agent-supplied params never change a decision."""

    HOSTILE_PARAMS = {
        "refundEnergy": 100,
        "energyCost": 0,
        "bypassRateLimit": True,
        "max": 1000,
        "capabilities": ["PROPOSE_PACT"],
    }

    def _run(self, make_granted, params):
        grant = make_granted(
            max_actions_per_window=ActionRateLimit(window_ticks=10, max=3)
        )
        context = create_sandbox_context("agent-1", grant, 5)
        context.action_window = ActionWindowState(
            actions=(ActionWindowEntry(tick=4, type=Capability.MOVE),),
            window_start=0,
        )
        prices = {"MOVE": 3, "SENSE": 1, "PROPOSE_PACT": 1}
        batch = [
            ActionRequest(type=kind, params=dict(params))
            for kind in ("MOVE", "MOVE", "SENSE", "SENSE", "PROPOSE_PACT")
        ]
        return process_actions(batch, context, 4, lambda a: prices[a.type])

    def test_decisions_match_plain_batch(self, make_granted):
        plain = self._run(make_granted, {})
        hostile = self._run(make_granted, self.HOSTILE_PARAMS)

        assert hostile.results == plain.results
        assert hostile.total_cost == plain.total_cost
        assert hostile.updated_window == plain.updated_window

    def test_every_gate_still_binds(self, make_granted):
        result = self._run(make_granted, self.HOSTILE_PARAMS)

        assert [r.executed for r in result.results] == [
            True,
            False,
            True,
            False,
            False,
        ]
        assert [r.rejection.code for r in result.results if r.rejection] == [
            ActionRejectionCode.INSUFFICIENT_ENERGY,
            ActionRejectionCode.RATE_LIMIT_EXCEEDED,
            ActionRejectionCode.CAPABILITY_NOT_GRANTED,
        ]
        assert result.total_cost == 4
        assert len(result.updated_window.actions) == 3


class TestIsolation:
    """Test that processing leaves caller state alone."""

    def test_context_is_not_mutated(self, context):
        window_before = context.action_window

        process_actions([_move(), _move()], context, 100, _flat(1))

        assert context.action_window == window_before
        assert context.action_window.actions == ()

    def test_price_function_receives_copy(self, context):
        action = _move(path=[1, 2])

        def price(received):
            received.params["path"].append(3)
            received.params["injected"] = True
            return 1

        result = process_actions([action], context, 100, price)

        assert result.results[0].executed is True
        assert action.params == {"path": [1, 2]}

    def test_results_keep_request_order(self, context):
        actions = [ActionRequest(type="INQUIRY"), _move(), ActionRequest(type="SENSE")]

        result = process_actions(actions, context, 100, _flat(1))

        assert len(result.results) == 3
        assert [r.executed for r in result.results] == [False, True, True]

    def test_empty_batch(self, context):
        result = process_actions([], context, 100, _flat(1))

        assert result.results == ()
        assert result.total_cost == 0


class TestLogging:
    def test_rejections_are_logged(self, context):
        with capture_logs() as logs:
            process_actions([ActionRequest(type="INQUIRY")], context, 100, _flat(1))

        rejected = [log for log in logs if log["event"] == "Action rejected"]
        assert rejected[0]["code"] == "CAPABILITY_NOT_GRANTED"
        assert rejected[0]["action_type"] == "INQUIRY"
