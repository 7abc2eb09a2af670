"""
Observability Infrastructure

Provides structured logging, tracing, and metrics collection for the
hierarchy engine. Library modules log through the standard ``logging``
module; once initialized, the manager routes those records into loguru sinks
and exposes OpenTelemetry tracing and metrics.

Nothing here is configured implicitly: until ``ObservabilityManager.initialize``
is called, spans are no-ops and metrics fall back to debug logging.
"""

import contextlib
import functools
import json
import logging
import sys
import time
import traceback
from enum import Enum
from typing import Any, Callable, Dict, Optional, TypeVar, Union

from loguru import logger
from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor

F = TypeVar("F", bound=Callable[..., Any])


class LogLevel(str, Enum):
    """Log level enumeration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ObservabilityConfig:
    """Configuration for observability."""

    def __init__(
        self,
        service_name: str = "bpmn-hierarchy",
        log_level: Union[str, LogLevel] = LogLevel.INFO,
        json_logs: bool = False,
        enable_tracing: bool = False,
        console_spans: bool = False,
        enable_metrics: bool = True,
        intercept_stdlib: bool = True,
    ):
        """Initialize observability configuration."""
        self.service_name = service_name
        self.log_level = log_level if isinstance(log_level, str) else log_level.value
        self.json_logs = json_logs
        self.enable_tracing = enable_tracing
        self.console_spans = console_spans
        self.enable_metrics = enable_metrics
        self.intercept_stdlib = intercept_stdlib


class JSONFormatter:
    """Custom JSON formatter for loguru."""

    def __call__(self, record: Dict[str, Any]) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name,
            "logger": record["name"],
            "module": record["module"],
            "function": record["function"],
            "line": record["line"],
            "message": record["message"],
        }

        if record["extra"]:
            log_data["extra"] = record["extra"]

        if record["exception"]:
            log_data["exception"] = {
                "type": record["exception"].type.__name__,
                "value": str(record["exception"].value),
                "traceback": "".join(
                    traceback.format_exception(
                        record["exception"].type,
                        record["exception"].value,
                        record["exception"].traceback,
                    )
                ),
            }

        # loguru treats the returned string as a format template
        return json.dumps(log_data, default=str).replace("{", "{{").replace("}", "}}") + "\n"


def _stderr_sink(message: str) -> None:
    # Resolved per write so redirected stderr (CLI runners) is honoured
    sys.stderr.write(message)


class InterceptHandler(logging.Handler):
    """Forward standard ``logging`` records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: Union[str, int] = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


class ObservabilityManager:
    """Centralized observability management."""

    _instance: Optional["ObservabilityManager"] = None

    def __init__(self, config: ObservabilityConfig):
        """Initialize observability manager."""
        self.config = config
        self.tracer: Optional[trace.Tracer] = None
        self._setup_logging()

        if config.enable_tracing:
            self._setup_tracing()

        if config.enable_metrics:
            self._setup_metrics()

        logger.info(
            f"Observability initialized: service={config.service_name}, "
            f"log_level={config.log_level}"
        )

    def _setup_logging(self) -> None:
        """Set up structured logging with loguru."""
        logger.remove()

        log_format = (
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        )

        if self.config.json_logs:
            logger.add(
                _stderr_sink,
                format=JSONFormatter(),
                level=self.config.log_level,
                colorize=False,
            )
        else:
            logger.add(
                _stderr_sink,
                format=log_format,
                level=self.config.log_level,
                colorize=sys.stderr.isatty(),
                backtrace=True,
                diagnose=False,
            )

        if self.config.intercept_stdlib:
            logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    def _setup_tracing(self) -> None:
        """Set up OpenTelemetry tracing."""
        resource = Resource(attributes={SERVICE_NAME: self.config.service_name})
        tracer_provider = TracerProvider(resource=resource)

        if self.config.console_spans:
            tracer_provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

        trace.set_tracer_provider(tracer_provider)
        self.tracer = trace.get_tracer(__name__)
        logger.info("OpenTelemetry tracing initialized")

    def _setup_metrics(self) -> None:
        """Set up OpenTelemetry metrics."""
        self.metric_reader = InMemoryMetricReader()
        resource = Resource(attributes={SERVICE_NAME: self.config.service_name})

        meter_provider = MeterProvider(resource=resource, metric_readers=[self.metric_reader])
        metrics.set_meter_provider(meter_provider)
        self.meter = metrics.get_meter(__name__)

        self.counter = self.meter.create_counter(
            "hierarchy_items_total",
            description="Items processed by hierarchy builds",
            unit="1",
        )
        self.histogram = self.meter.create_histogram(
            "hierarchy_duration_ms",
            description="Hierarchy build stage duration in milliseconds",
            unit="ms",
        )

        logger.info("OpenTelemetry metrics initialized")

    @classmethod
    def initialize(cls, config: Optional[ObservabilityConfig] = None) -> "ObservabilityManager":
        """Initialize or get singleton instance."""
        if cls._instance is None:
            cls._instance = cls(config or ObservabilityConfig())
        return cls._instance

    @classmethod
    def current(cls) -> Optional["ObservabilityManager"]:
        """The initialized instance, or None when observability is not set up."""
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Forget the singleton (used by tests and the CLI between runs)."""
        cls._instance = None


@contextlib.contextmanager
def span(name: str, attributes: Optional[Dict[str, Any]] = None):
    """Context manager for creating spans; a no-op without a tracer provider."""
    tracer = trace.get_tracer("bpmn_hierarchy")
    with tracer.start_as_current_span(name) as span_obj:
        if attributes:
            for key, value in attributes.items():
                span_obj.set_attribute(key, value)
        yield span_obj


def record_metric(
    metric_name: str,
    value: Union[int, float],
    attributes: Optional[Dict[str, str]] = None,
) -> None:
    """
    Record a metric value with OpenTelemetry.

    Falls back to debug logging when metrics are not initialized.
    """
    manager = ObservabilityManager.current()
    metric_attributes = {"metric": metric_name, **(attributes or {})}

    if manager is not None and hasattr(manager, "counter"):
        if metric_name.endswith("_total") or isinstance(value, int):
            manager.counter.add(value, attributes=metric_attributes)
        else:
            manager.histogram.record(value, attributes=metric_attributes)

    logger.bind(metric=metric_name, value=value).debug(f"Metric recorded: {metric_name}={value}")


def log_execution(
    level: Union[str, LogLevel] = LogLevel.DEBUG,
    include_result: bool = False,
    include_duration: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for logging function execution.

    Args:
        level: Logging level
        include_result: Whether to log a truncated function result
        include_duration: Whether to log and record execution duration
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            log_level = level if isinstance(level, str) else level.value
            func_name = f"{func.__module__}.{func.__qualname__}"
            log_data: Dict[str, Any] = {"function": func_name}
            start_time = time.perf_counter()

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log_data["duration_ms"] = (time.perf_counter() - start_time) * 1000
                log_data["error"] = str(e)
                logger.bind(**log_data).opt(exception=True).error(f"Function failed: {func_name}")
                raise

            if include_result:
                log_data["result"] = str(result)[:200]

            if include_duration:
                duration_ms = (time.perf_counter() - start_time) * 1000
                log_data["duration_ms"] = duration_ms
                record_metric(f"{func.__name__}_duration", duration_ms)

            logger.bind(**log_data).log(log_level, f"Function executed: {func_name}")
            return result

        return wrapper  # type: ignore

    return decorator


class Timer:
    """Context manager for timing operations."""

    def __init__(self, name: str, log: bool = True):
        """Initialize timer."""
        self.name = name
        self.log = log
        self.start_time: float = 0
        self.elapsed: float = 0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.elapsed = time.perf_counter() - self.start_time
        if self.log:
            logger.debug(f"Timer '{self.name}': {self.elapsed:.3f}s")
            record_metric(f"{self.name}_duration", self.elapsed * 1000)


__all__ = [
    "LogLevel",
    "ObservabilityConfig",
    "ObservabilityManager",
    "InterceptHandler",
    "JSONFormatter",
    "span",
    "log_execution",
    "record_metric",
    "Timer",
]
