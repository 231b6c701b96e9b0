"""Per-event pipeline state machine.

Tracks an event through the stages:
- received → extracted → prompt_built → completed → posted

with the terminal stages failed and skipped.
"""

from issue_responder.state.machine import InvalidTransitionError, PipelineRun
from issue_responder.state.models import (
    PipelineStage,
    StateTransition,
    VALID_TRANSITIONS,
    is_terminal_stage,
    is_valid_transition,
    next_stage,
)

__all__ = [
    "InvalidTransitionError",
    "PipelineRun",
    "PipelineStage",
    "StateTransition",
    "VALID_TRANSITIONS",
    "is_terminal_stage",
    "is_valid_transition",
    "next_stage",
]
