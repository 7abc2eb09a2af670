"""
Core infrastructure: configuration and observability.
"""

from bpmn_hierarchy.core.config import HierarchyConfig, MatcherConfig, OrderConfig
from bpmn_hierarchy.core.observability import (
    LogLevel,
    ObservabilityConfig,
    ObservabilityManager,
    Timer,
    log_execution,
    record_metric,
    span,
)

__all__ = [
    "MatcherConfig",
    "OrderConfig",
    "HierarchyConfig",
    "LogLevel",
    "ObservabilityConfig",
    "ObservabilityManager",
    "Timer",
    "log_execution",
    "record_metric",
    "span",
]
