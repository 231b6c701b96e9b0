"""Pipeline event models for observability.

This module defines the data models for pipeline events:
- EventType: Enum of all event types emitted by the orchestrator
- PipelineEvent: Structured event with the event id, issue and details

Events are emitted for every stage transition and for each terminal
outcome of an event (completion, skip, error, timeout).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the responder pipeline.

    Attributes:
        STATE_TRANSITION: An event moved from one stage to another.
        ERROR: A stage failed with a typed failure.
        COMPLETION: A response was posted.
        SKIPPED: The event had already been handled.
        TIMEOUT: The processing deadline expired.
    """

    STATE_TRANSITION = "state_transition"
    ERROR = "error"
    COMPLETION = "completion"
    SKIPPED = "skipped"
    TIMEOUT = "timeout"


class PipelineEvent(BaseModel):
    """Structured event emitted by the responder pipeline.

    Attributes:
        event_type: The category of event.
        event_id: Id of the issue event being handled.
        issue_id: Canonical identifier in format "{owner}/{repo}#{number}".
        repository: Full repository path in format "{owner}/{repo}".
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For STATE_TRANSITION events:
            - from_stage, to_stage

        For ERROR and TIMEOUT events:
            - stage: Stage being entered when the failure occurred
            - reason: FailureKind value
            - error_message: Human-readable error description

        For COMPLETION and SKIPPED events:
            - duration_seconds: Total processing time
            - comment_url or label, when known
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    event_id: str = Field(
        ...,
        min_length=1,
        description="Id of the issue event being handled",
    )

    issue_id: str = Field(
        ...,
        min_length=1,
        description='Canonical issue identifier in format "{owner}/{repo}#{number}"',
    )

    repository: str = Field(
        ...,
        min_length=1,
        description='Full repository path in format "{owner}/{repo}"',
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert event to a flat dictionary for structured logging.

        Example:
            >>> event = PipelineEvent(
            ...     event_type=EventType.ERROR,
            ...     event_id="42",
            ...     issue_id="org/repo#123",
            ...     repository="org/repo",
            ...     details={"reason": "timeout"}
            ... )
            >>> event.to_log_dict()["event_type"]
            'error'
        """
        return {
            "event_type": self.event_type.value,
            "event_id": self.event_id,
            "issue_id": self.issue_id,
            "repository": self.repository,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
