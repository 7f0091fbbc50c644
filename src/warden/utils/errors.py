"""Structured error types for the admission and sandbox engine.

Failures inside the engine are reported as typed values (validation issues,
rejection reasons, sandbox error codes, action rejections). The exception
classes here are used at the edges the host owns: configuration loading and
the internal race inside the step executor.
"""

from enum import Enum


class SandboxErrorCode(str, Enum):
    """Terminal error outcomes of one sandboxed step."""

    TIMEOUT = "TIMEOUT"
    CRASH = "CRASH"
    INVALID_OUTPUT = "INVALID_OUTPUT"
    # Reserved for out-of-process runtimes; never produced by the in-process executor
    MEMORY_EXCEEDED = "MEMORY_EXCEEDED"
    SANDBOX_VIOLATION = "SANDBOX_VIOLATION"


class ActionRejectionCode(str, Enum):
    """Reasons an individual action request was not executed."""

    CAPABILITY_NOT_GRANTED = "CAPABILITY_NOT_GRANTED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INSUFFICIENT_ENERGY = "INSUFFICIENT_ENERGY"
    # World-side codes; the action processor itself never emits these
    INVALID_PARAMS = "INVALID_PARAMS"
    WORLD_REJECTED = "WORLD_REJECTED"
    COMPUTE_BUDGET_EXCEEDED = "COMPUTE_BUDGET_EXCEEDED"


class WardenError(Exception):
    """Base exception for warden errors."""


class ConfigError(WardenError):
    """Configuration-related errors."""


class ManifestError(WardenError):
    """Error raised when a manifest is required to be valid but is not.

    Only raised by convenience helpers that explicitly ask for an exception
    (``parse_manifest``); validation itself never raises.
    """

    def __init__(self, messages: list[str]):
        """Initialize manifest error.

        Args:
            messages: Human-readable validation messages
        """
        self.messages = messages
        super().__init__("Invalid manifest: " + "; ".join(messages))


class StepTimeoutError(WardenError):
    """A step that lost the race against its compute deadline."""

    def __init__(self, budget_ms: float, elapsed_ms: float):
        """Initialize step timeout error.

        Args:
            budget_ms: Granted compute budget in milliseconds
            elapsed_ms: Time measured by the host in milliseconds
        """
        self.budget_ms = budget_ms
        self.elapsed_ms = elapsed_ms

        message = (
            f"Compute budget exceeded: {budget_ms:g}ms "
            f"(elapsed {elapsed_ms:.1f}ms)"
        )
        super().__init__(message)


class InvalidStepOutputError(WardenError):
    """Raised internally when a step returns a malformed output shape."""

    def __init__(self, reason: str):
        """Initialize invalid output error.

        Args:
            reason: Description of the shape violation
        """
        self.reason = reason
        super().__init__(
            "Step must return { actions: ActionRequest[], computeTimeMs: number }: "
            + reason
        )
