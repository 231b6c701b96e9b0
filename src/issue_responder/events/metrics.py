"""Prometheus metrics for pipeline observability.

Metrics are exposed at the ``/metrics`` endpoint in Prometheus format.

Metrics Defined:
- responder_events_handled_total: Counter of finished events by outcome
- responder_failures_total: Counter of failures by stage and reason
- responder_processing_duration_seconds: Histogram of processing time
- responder_events_in_stage: Gauge of in-flight events per stage

The MetricsEventEmitter updates these metrics from pipeline events.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from issue_responder.events.emitter import EventEmitter
from issue_responder.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


# Covers fast skips through slow LLM calls with retries
DEFAULT_DURATION_BUCKETS = (
    0.1,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
)

# Non-terminal stages, matching PipelineStage values
IN_FLIGHT_STAGES = (
    "received",
    "extracted",
    "prompt_built",
    "completed",
)


class PipelineMetrics:
    """Container for all responder Prometheus metrics.

    Metrics:
        events_handled_total: Finished events.
            Labels: repository, outcome (posted/skipped/failed)
        failures_total: Failed events.
            Labels: stage, reason
        processing_duration_seconds: Time from receipt to outcome.
            Labels: outcome
        events_in_stage: Events currently in each non-terminal stage.
            Labels: stage

    Example:
        >>> metrics = PipelineMetrics(registry=CollectorRegistry())
        >>> metrics.record_event_handled("org/repo", "posted")
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize responder metrics.

        Args:
            registry: Optional Prometheus registry. If None, uses the
                      default REGISTRY. Pass a custom registry for testing.
        """
        self.registry = registry or REGISTRY

        self.events_handled_total = Counter(
            "responder_events_handled_total",
            "Total number of issue events handled",
            labelnames=["repository", "outcome"],
            registry=self.registry,
        )

        self.failures_total = Counter(
            "responder_failures_total",
            "Total number of issue events that failed",
            labelnames=["stage", "reason"],
            registry=self.registry,
        )

        self.processing_duration_seconds = Histogram(
            "responder_processing_duration_seconds",
            "Time spent handling issue events in seconds",
            labelnames=["outcome"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.events_in_stage = Gauge(
            "responder_events_in_stage",
            "Current number of issue events in each pipeline stage",
            labelnames=["stage"],
            registry=self.registry,
        )

        for stage in IN_FLIGHT_STAGES:
            self.events_in_stage.labels(stage=stage).set(0)

    def record_event_handled(self, repository: str, outcome: str) -> None:
        self.events_handled_total.labels(repository=repository, outcome=outcome).inc()

    def record_failure(self, stage: str, reason: str) -> None:
        self.failures_total.labels(stage=stage, reason=reason).inc()

    def record_processing_duration(self, outcome: str, duration_seconds: float) -> None:
        self.processing_duration_seconds.labels(outcome=outcome).observe(duration_seconds)

    def update_stage_count(self, stage: Optional[str], delta: int) -> None:
        """Adjust the in-flight count for a stage; terminal stages are ignored."""
        if stage in IN_FLIGHT_STAGES:
            self.events_in_stage.labels(stage=stage).inc(delta)


_default_metrics: Optional[PipelineMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> PipelineMetrics:
    """Get the metrics instance for the default registry, or a new one.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.
    """
    global _default_metrics

    if registry is not None:
        return PipelineMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = PipelineMetrics()
    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus text output for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - STATE_TRANSITION: moves the event between stage gauges
    - COMPLETION, SKIPPED: counts the outcome and records duration
    - ERROR, TIMEOUT: counts the failure by stage and reason

    Attributes:
        metrics: The PipelineMetrics instance to update.
    """

    def __init__(
        self,
        metrics: Optional[PipelineMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        """Initialize the metrics event emitter.

        Args:
            metrics: Optional PipelineMetrics instance. If None, uses
                     the global metrics instance.
            registry: Optional Prometheus registry. Only used if metrics
                      is None.
        """
        self._metrics = metrics if metrics is not None else get_metrics(registry)

    @property
    def metrics(self) -> PipelineMetrics:
        return self._metrics

    async def emit(self, event: PipelineEvent) -> None:
        try:
            if event.event_type == EventType.STATE_TRANSITION:
                self._metrics.update_stage_count(event.details.get("from_stage"), -1)
                self._metrics.update_stage_count(event.details.get("to_stage"), +1)
            elif event.event_type == EventType.COMPLETION:
                self._record_outcome(event, "posted")
            elif event.event_type == EventType.SKIPPED:
                self._record_outcome(event, "skipped")
            elif event.event_type in (EventType.ERROR, EventType.TIMEOUT):
                self._metrics.record_failure(
                    stage=event.details.get("stage", "unknown"),
                    reason=event.details.get("reason", "unknown"),
                )
                self._record_outcome(event, "failed")
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={
                    "event_type": event.event_type.value,
                    "event_id": event.event_id,
                    "error": str(e),
                },
            )

    def _record_outcome(self, event: PipelineEvent, outcome: str) -> None:
        self._metrics.record_event_handled(event.repository, outcome)
        duration = event.details.get("duration_seconds")
        if duration is not None:
            self._metrics.record_processing_duration(outcome, float(duration))
