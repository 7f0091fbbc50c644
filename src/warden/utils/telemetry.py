"""Telemetry utilities for logging, metrics, and tracing.

This module provides centralized observability infrastructure including:
- Structured logging with bounded rendering of agent-supplied text
- Prometheus metrics for admission, step execution and action decisions
- OpenTelemetry tracing setup
- Performance measurement utilities
"""

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from prometheus_client import Counter, Gauge, Histogram, start_http_server
from structlog.processors import JSONRenderer

# Prometheus metrics
OPERATION_COUNTER = Counter(
    "warden_operations_total",
    "Total number of timed operations",
    ["operation", "status"],
)

OPERATION_LATENCY = Histogram(
    "warden_operation_duration_seconds",
    "Operation latency in seconds",
    ["operation"],
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.02, 0.05, 0.1, 0.2, 0.5, 1.0],
)

ADMISSION_DECISIONS = Counter(
    "warden_admission_decisions_total",
    "Admission decisions by outcome and agent kind",
    ["outcome", "kind"],
)

CAPABILITIES_DROPPED = Counter(
    "warden_capabilities_dropped_total",
    "Requested capabilities dropped because the policy does not allow them",
    ["capability"],
)

STEP_OUTCOMES = Counter(
    "warden_step_outcomes_total",
    "Sandboxed step executions by outcome",
    ["outcome"],
)

STEP_COMPUTE_SECONDS = Histogram(
    "warden_step_compute_seconds",
    "Host-measured wall-clock time of sandboxed steps",
    ["outcome"],
    buckets=[0.001, 0.002, 0.005, 0.01, 0.02, 0.05, 0.1, 0.2],
)

DETACHED_STEP_WORKERS = Gauge(
    "warden_detached_step_workers",
    "Worker threads still running a step that already timed out",
)

ACTION_DECISIONS = Counter(
    "warden_action_decisions_total",
    "Action requests by capability and decision",
    ["capability", "decision"],
)

ENERGY_CHARGED = Counter(
    "warden_energy_charged_total",
    "Total energy cost charged for executed actions",
)

# Agent-controlled strings (crash messages, names) are bounded before rendering
MAX_UNTRUSTED_TEXT = 2048


def truncate_text(text: Any, limit: int = MAX_UNTRUSTED_TEXT) -> Any:
    """Bound the length of a string value for logging.

    Args:
        text: Value that may be an oversized string
        limit: Maximum number of characters kept

    Returns:
        Truncated string with a marker, or the original input if not a string

    Example:
        >>> truncate_text("abcdef", limit=3)
        'abc...[truncated 3 chars]'
    """
    if not isinstance(text, str) or len(text) <= limit:
        return text
    return f"{text[:limit]}...[truncated {len(text) - limit} chars]"


def truncation_processor(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor bounding every string value in a log event.

    Args:
        logger: Logger instance (unused)
        method_name: Log method name (unused)
        event_dict: Event dictionary to process

    Returns:
        Event dictionary with long strings truncated
    """

    def bound_value(value: Any) -> Any:
        if isinstance(value, str):
            return truncate_text(value)
        elif isinstance(value, dict):
            return {k: bound_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [bound_value(item) for item in value]
        return value

    return {key: bound_value(value) for key, value in event_dict.items()}


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    enable_truncation: bool = True,
) -> None:
    """Initialize structured logging.

    Called once at process start; loggers are then handed to call sites
    explicitly through ``get_logger``.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: ``json`` for JSON lines, ``text`` for console rendering
        enable_truncation: Whether to bound agent-supplied strings
    """
    logging.basicConfig(format="%(message)s", level=log_level.upper())

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if enable_truncation:
        processors.append(truncation_processor)

    if log_format == "text":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_tracing(
    service_name: str = "warden",
    otlp_endpoint: str | None = None,
) -> None:
    """Initialize OpenTelemetry tracing.

    Args:
        service_name: Name of the service for tracing
        otlp_endpoint: OTLP endpoint URL (if None, uses console exporter)
    """
    from warden import __version__

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": __version__,
        }
    )

    tracer_provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(tracer_provider)

    exporter: OTLPSpanExporter | ConsoleSpanExporter
    if otlp_endpoint:
        exporter = OTLPSpanExporter(endpoint=otlp_endpoint)
    else:
        exporter = ConsoleSpanExporter()

    tracer_provider.add_span_processor(BatchSpanProcessor(exporter))


def get_tracer(name: str) -> trace.Tracer:
    """Get OpenTelemetry tracer for a component.

    Args:
        name: Tracer name (typically module name)

    Returns:
        Tracer instance
    """
    return trace.get_tracer(name)


def get_logger(name: str, **context: Any) -> Any:
    """Get a structured logger with optional context.

    Args:
        name: Logger name
        **context: Additional context to bind to logger

    Returns:
        Bound logger with context
    """
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger


def log_operation(
    logger: Any,
    operation: str,
    status: str = "success",
    agent_id: str | None = None,
    tick: int | None = None,
    latency_ms: float | None = None,
    **extra_context: Any,
) -> None:
    """Log an operation with standardized fields for observability.

    Args:
        logger: Structured logger instance
        operation: Operation name
        status: Operation status (success, error, warning)
        agent_id: Agent identifier
        tick: Simulation tick the operation belongs to
        latency_ms: Operation latency in milliseconds
        **extra_context: Additional context fields
    """
    log_data = {
        "operation": operation,
        "status": status,
        **extra_context,
    }

    if agent_id is not None:
        log_data["agent_id"] = agent_id
    if tick is not None:
        log_data["tick"] = tick
    if latency_ms is not None:
        log_data["latency_ms"] = latency_ms

    if status == "error":
        logger.error("Operation completed", **log_data)
    elif status == "warning":
        logger.warning("Operation completed", **log_data)
    else:
        logger.debug("Operation completed", **log_data)


class PerformanceTimer:
    """Context manager for measuring operation performance.

    Automatically records metrics, logs timing information, and creates tracing spans.
    """

    def __init__(
        self,
        operation: str,
        agent_id: str | None = None,
        tick: int | None = None,
        logger: structlog.BoundLogger | None = None,
        record_metrics: bool = True,
        create_span: bool = True,
        tracer_name: str = "warden.performance",
    ):
        self.operation = operation
        self.agent_id = agent_id
        self.tick = tick
        self.logger = logger or get_logger("warden.performance")
        self.record_metrics = record_metrics
        self.create_span = create_span
        self.tracer = get_tracer(tracer_name) if create_span else None
        self.span: trace.Span | None = None
        self.start_time: float | None = None
        self.end_time: float | None = None

    def _start(self) -> None:
        self.start_time = time.perf_counter()

        if self.create_span and self.tracer:
            self.span = self.tracer.start_span(self.operation)
            if self.agent_id:
                self.span.set_attribute("agent_id", self.agent_id)
            if self.tick is not None:
                self.span.set_attribute("tick", self.tick)

    def _finish(self, exc: BaseException | None) -> None:
        self.end_time = time.perf_counter()
        duration = self.end_time - (self.start_time or 0)
        status = "error" if exc is not None else "success"

        if self.record_metrics:
            OPERATION_COUNTER.labels(operation=self.operation, status=status).inc()
            OPERATION_LATENCY.labels(operation=self.operation).observe(duration)

        if self.span:
            self.span.set_attribute("duration_seconds", duration)
            self.span.set_attribute("status", status)

            if exc is not None:
                self.span.set_status(trace.Status(trace.StatusCode.ERROR, str(exc)))
                self.span.record_exception(exc)
            else:
                self.span.set_status(trace.Status(trace.StatusCode.OK))

            self.span.end()

        extra = {"error": str(exc)} if exc is not None else {}
        log_operation(
            self.logger,
            self.operation,
            status=status,
            agent_id=self.agent_id,
            tick=self.tick,
            latency_ms=duration * 1000,
            **extra,
        )

    def __enter__(self) -> "PerformanceTimer":
        self._start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self._finish(exc_val)

    @property
    def duration(self) -> float | None:
        """Get operation duration in seconds."""
        if self.start_time is not None and self.end_time is not None:
            return self.end_time - self.start_time
        return None


@asynccontextmanager
async def async_performance_timer(
    operation: str,
    agent_id: str | None = None,
    tick: int | None = None,
    logger: structlog.BoundLogger | None = None,
    record_metrics: bool = True,
    create_span: bool = True,
    tracer_name: str = "warden.performance",
) -> AsyncGenerator[PerformanceTimer, None]:
    """Async context manager for measuring operation performance.

    Args:
        operation: Operation name for metrics/logging
        agent_id: Agent identifier (optional)
        tick: Simulation tick (optional)
        logger: Logger instance (optional)
        record_metrics: Whether to record Prometheus metrics
        create_span: Whether to create tracing span
        tracer_name: Tracer name for spans

    Yields:
        PerformanceTimer instance
    """
    timer = PerformanceTimer(
        operation=operation,
        agent_id=agent_id,
        tick=tick,
        logger=logger,
        record_metrics=record_metrics,
        create_span=create_span,
        tracer_name=tracer_name,
    )
    timer._start()

    try:
        yield timer
    except BaseException as e:
        timer._finish(e)
        raise
    else:
        timer._finish(None)


def start_metrics_server(port: int = 8000) -> None:
    """Start Prometheus metrics HTTP server.

    Args:
        port: Port to serve metrics on
    """
    start_http_server(port)
