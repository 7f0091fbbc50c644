"""Unit tests for error types."""

import pytest

from warden.utils.errors import (
    ActionRejectionCode,
    ConfigError,
    InvalidStepOutputError,
    ManifestError,
    SandboxErrorCode,
    StepTimeoutError,
    WardenError,
)


class TestErrorCodes:
    def test_codes_serialize_as_their_names(self):
        assert SandboxErrorCode.TIMEOUT.value == "TIMEOUT"
        assert ActionRejectionCode("RATE_LIMIT_EXCEEDED") is (
            ActionRejectionCode.RATE_LIMIT_EXCEEDED
        )

    def test_codes_are_strings(self):
        assert SandboxErrorCode.CRASH == "CRASH"


class TestExceptions:
    """Test exception messages and hierarchy."""

    @pytest.mark.parametrize(
        "error",
        [
            ConfigError("bad"),
            ManifestError(["a: b"]),
            StepTimeoutError(10, 12.3),
            InvalidStepOutputError("missing actions"),
        ],
    )
    def test_all_derive_from_base(self, error):
        assert isinstance(error, WardenError)

    def test_step_timeout_message(self):
        error = StepTimeoutError(10, 15.04)

        assert str(error) == "Compute budget exceeded: 10ms (elapsed 15.0ms)"
        assert error.budget_ms == 10
        assert error.elapsed_ms == 15.04

    def test_fractional_budget_in_message(self):
        assert str(StepTimeoutError(2.5, 3)).startswith(
            "Compute budget exceeded: 2.5ms"
        )

    def test_manifest_error_joins_messages(self):
        error = ManifestError(["agent.kind: Bad", "requested: Required object"])

        assert str(error) == (
            "Invalid manifest: agent.kind: Bad; requested: Required object"
        )
        assert error.messages == ["agent.kind: Bad", "requested: Required object"]

    def test_invalid_output_keeps_reason(self):
        error = InvalidStepOutputError("actions must be a list")

        assert error.reason == "actions must be a list"
        assert str(error).endswith(": actions must be a list")
