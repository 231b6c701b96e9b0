"""Per-event pipeline state machine.

A PipelineRun tracks one invocation of the orchestrator. It validates
every transition against VALID_TRANSITIONS and records a timestamped
history. Runs live only as long as the invocation that owns them.
"""

import logging
from typing import Any, Dict, List, Optional

from issue_responder.state.models import (
    PipelineStage,
    StateTransition,
    is_terminal_stage,
    is_valid_transition,
    next_stage,
)


logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """Raised when an invalid stage transition is attempted.

    Attributes:
        from_stage: The current stage.
        to_stage: The attempted target stage.
        message: Human-readable error message.
    """

    def __init__(
        self,
        from_stage: PipelineStage,
        to_stage: PipelineStage,
        message: Optional[str] = None,
    ):
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.message = message or (
            f"Invalid transition from {from_stage.value} to {to_stage.value}"
        )
        super().__init__(self.message)


class PipelineRun:
    """Stage tracker for a single event.

    Attributes:
        event_id: The event being handled.
        stage: The current stage.
        history: Ordered list of transitions.
    """

    def __init__(self, event_id: str):
        self.event_id = event_id
        self.stage = PipelineStage.RECEIVED
        self.history: List[StateTransition] = []

    @property
    def pending_stage(self) -> PipelineStage:
        """The stage the run is working towards.

        Failures are attributed to this stage.
        """
        return next_stage(self.stage)

    @property
    def is_finished(self) -> bool:
        return is_terminal_stage(self.stage)

    def transition(
        self,
        to_stage: PipelineStage,
        details: Optional[Dict[str, Any]] = None,
    ) -> StateTransition:
        """Move the run to a new stage.

        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        if not is_valid_transition(self.stage, to_stage):
            logger.warning(
                "Invalid stage transition attempted",
                extra={
                    "event_id": self.event_id,
                    "from_stage": self.stage.value,
                    "to_stage": to_stage.value,
                },
            )
            raise InvalidTransitionError(self.stage, to_stage)

        transition = StateTransition(
            from_stage=self.stage,
            to_stage=to_stage,
            details=details or {},
        )
        self.history.append(transition)
        self.stage = to_stage
        return transition

    def stages(self) -> List[PipelineStage]:
        """All stages visited, starting with RECEIVED."""
        return [PipelineStage.RECEIVED] + [t.to_stage for t in self.history]
