"""Pipeline event emission and metrics.

This module provides observability for the responder:
- PipelineEvent: structured events for transitions and outcomes
- EventEmitter implementations: logging, metrics, composite, null
- Prometheus metrics exposed at /metrics
"""

from issue_responder.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
    create_event_emitter,
)
from issue_responder.events.metrics import (
    MetricsEventEmitter,
    PipelineMetrics,
    generate_metrics_output,
    get_metrics,
)
from issue_responder.events.models import EventType, PipelineEvent

__all__ = [
    "CompositeEventEmitter",
    "EventEmitter",
    "EventSinkType",
    "EventType",
    "LoggingEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    "PipelineEvent",
    "PipelineMetrics",
    "create_event_emitter",
    "generate_metrics_output",
    "get_metrics",
]
