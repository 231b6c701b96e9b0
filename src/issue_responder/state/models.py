"""Pipeline stage models.

This module defines the per-event state machine of the responder:
- PipelineStage: Enum of all pipeline stages
- StateTransition: Record of a stage transition with timestamp and details
- VALID_TRANSITIONS: Map defining allowed transitions

Stage flow:
    received → extracted → prompt_built → completed → posted

Any non-terminal stage can transition to failed. ``skipped`` is reachable
from received (the event was already posted) and from completed (the
poster found the event already claimed).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class PipelineStage(str, Enum):
    """Stages an event moves through while it is handled.

    Attributes:
        RECEIVED: Event accepted by the orchestrator.
        EXTRACTED: Canonical content extracted.
        PROMPT_BUILT: Prompt constructed within the word budget.
        COMPLETED: Completion received from the model.
        POSTED: Response delivered to GitHub.
        FAILED: A stage failed; the event is finished.
        SKIPPED: The event was already handled; nothing was posted.
    """

    RECEIVED = "received"
    EXTRACTED = "extracted"
    PROMPT_BUILT = "prompt_built"
    COMPLETED = "completed"
    POSTED = "posted"
    FAILED = "failed"
    SKIPPED = "skipped"


class StateTransition(BaseModel):
    """Record of a stage transition.

    Attributes:
        from_stage: The stage before the transition.
        to_stage: The stage after the transition.
        timestamp: When the transition occurred (UTC).
        details: Optional metadata (failure kind, skip reason, ...).
    """

    model_config = ConfigDict(frozen=True)

    from_stage: PipelineStage
    to_stage: PipelineStage
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: Dict[str, Any] = Field(default_factory=dict)


VALID_TRANSITIONS: Dict[PipelineStage, List[PipelineStage]] = {
    PipelineStage.RECEIVED: [
        PipelineStage.EXTRACTED,
        PipelineStage.SKIPPED,
        PipelineStage.FAILED,
    ],
    PipelineStage.EXTRACTED: [
        PipelineStage.PROMPT_BUILT,
        PipelineStage.FAILED,
    ],
    PipelineStage.PROMPT_BUILT: [
        PipelineStage.COMPLETED,
        PipelineStage.FAILED,
    ],
    PipelineStage.COMPLETED: [
        PipelineStage.POSTED,
        PipelineStage.SKIPPED,
        PipelineStage.FAILED,
    ],
    # Terminal stages
    PipelineStage.POSTED: [],
    PipelineStage.FAILED: [],
    PipelineStage.SKIPPED: [],
}


def is_valid_transition(from_stage: PipelineStage, to_stage: PipelineStage) -> bool:
    """Check if a stage transition is allowed.

    Example:
        >>> is_valid_transition(PipelineStage.RECEIVED, PipelineStage.EXTRACTED)
        True
        >>> is_valid_transition(PipelineStage.POSTED, PipelineStage.FAILED)
        False
    """
    return to_stage in VALID_TRANSITIONS.get(from_stage, [])


def is_terminal_stage(stage: PipelineStage) -> bool:
    """Check if a stage has no outgoing transitions."""
    return len(VALID_TRANSITIONS.get(stage, [])) == 0


def next_stage(stage: PipelineStage) -> PipelineStage:
    """Return the stage that follows ``stage`` on the success path.

    Raises:
        ValueError: If the stage is terminal.
    """
    for candidate in VALID_TRANSITIONS.get(stage, []):
        if candidate not in (PipelineStage.FAILED, PipelineStage.SKIPPED):
            return candidate
    raise ValueError(f"Stage {stage.value} has no successor")
