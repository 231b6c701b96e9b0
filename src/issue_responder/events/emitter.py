"""Sinks for pipeline events.

The orchestrator reports every stage change, completion, skip and failure
as a PipelineEvent. Where those events go is decided here:
- LoggingEventEmitter writes one log record per event
- CompositeEventEmitter fans an event out to several sinks
- NullEventEmitter drops events (tests, dry runs)

The Prometheus sink lives in metrics.py.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional

from prometheus_client import CollectorRegistry

from issue_responder.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


EVENT_LOG_LEVELS: Dict[EventType, int] = {
    EventType.STATE_TRANSITION: logging.DEBUG,
    EventType.COMPLETION: logging.INFO,
    EventType.SKIPPED: logging.INFO,
    EventType.TIMEOUT: logging.WARNING,
    EventType.ERROR: logging.ERROR,
}


class EventSinkType(str, Enum):
    """Where pipeline events can be sent."""

    LOGGING = "logging"
    METRICS = "metrics"


class EventEmitter(ABC):
    """Receiver of pipeline events.

    emit() runs inside the event's pipeline task. The orchestrator guards
    each call, but sinks should still avoid raising.
    """

    @abstractmethod
    async def emit(self, event: PipelineEvent) -> None:
        """Deliver one event to the sink."""
        pass

    async def close(self) -> None:
        """Release whatever the sink holds. No-op by default."""
        pass


class LoggingEventEmitter(EventEmitter):
    """Writes each event as a log record with the event fields in ``extra``.

    Stage transitions are logged at DEBUG so that a healthy pipeline only
    produces one INFO line per handled event. Timeouts are WARNING and all
    other failures ERROR.
    """

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger

    async def emit(self, event: PipelineEvent) -> None:
        self._logger.log(
            EVENT_LOG_LEVELS.get(event.event_type, logging.INFO),
            "Pipeline event: %s for %s",
            event.event_type.value,
            event.issue_id,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Forwards every event to each child sink in order.

    A sink that raises is logged and skipped; the remaining sinks still
    receive the event.

    Example:
        >>> sinks = CompositeEventEmitter([LoggingEventEmitter(), NullEventEmitter()])
        >>> await sinks.emit(event)
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = list(emitters or [])

    def add_emitter(self, emitter: EventEmitter) -> None:
        self._emitters.append(emitter)

    @property
    def emitters(self) -> List[EventEmitter]:
        return list(self._emitters)

    async def emit(self, event: PipelineEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception as e:
                logger.error(
                    "Event sink %s rejected %s event: %s",
                    type(emitter).__name__,
                    event.event_type.value,
                    e,
                    extra={
                        "emitter_type": type(emitter).__name__,
                        "event_id": event.event_id,
                        "error": str(e),
                    },
                )

    async def close(self) -> None:
        for emitter in self._emitters:
            try:
                await emitter.close()
            except Exception as e:
                logger.error("Closing event sink %s failed: %s", type(emitter).__name__, e)


class NullEventEmitter(EventEmitter):
    """Drops every event."""

    async def emit(self, event: PipelineEvent) -> None:
        pass


def create_event_emitter(
    sink_types: Optional[List[EventSinkType]] = None,
    logger_name: Optional[str] = None,
    registry: Optional[CollectorRegistry] = None,
) -> EventEmitter:
    """Build the emitter for the configured sinks.

    With no sinks the responder logs events. A single sink is returned
    as is; several are wrapped in a CompositeEventEmitter.

    Args:
        sink_types: Sinks to enable, in delivery order.
        logger_name: Logger used by the logging sink.
        registry: Prometheus registry used by the metrics sink.
    """
    # metrics.py imports this module
    from issue_responder.events.metrics import MetricsEventEmitter

    if not sink_types:
        return LoggingEventEmitter(logger_name=logger_name)

    sinks: List[EventEmitter] = []
    for sink_type in sink_types:
        if sink_type == EventSinkType.METRICS:
            sinks.append(MetricsEventEmitter(registry=registry))
        elif sink_type == EventSinkType.LOGGING:
            sinks.append(LoggingEventEmitter(logger_name=logger_name))
        else:
            logger.warning("Ignoring unknown event sink %s", sink_type)

    return sinks[0] if len(sinks) == 1 else CompositeEventEmitter(sinks)
