# Shared utilities and helpers

from .errors import (
    ActionRejectionCode,
    ConfigError,
    InvalidStepOutputError,
    ManifestError,
    SandboxErrorCode,
    StepTimeoutError,
    WardenError,
)
from .telemetry import (
    PerformanceTimer,
    async_performance_timer,
    get_logger,
    get_tracer,
    log_operation,
    setup_logging,
    setup_tracing,
    start_metrics_server,
    truncate_text,
)

__all__ = [
    "ActionRejectionCode",
    "ConfigError",
    "InvalidStepOutputError",
    "ManifestError",
    "PerformanceTimer",
    "SandboxErrorCode",
    "StepTimeoutError",
    "WardenError",
    "async_performance_timer",
    "get_logger",
    "get_tracer",
    "log_operation",
    "setup_logging",
    "setup_tracing",
    "start_metrics_server",
    "truncate_text",
]
