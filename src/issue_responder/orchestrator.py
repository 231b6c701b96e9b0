"""Pipeline orchestrator connecting all stages of the responder.

Drives one issue event through the pipeline:
received → extracted → prompt_built → completed → posted

Each stage either succeeds, advancing the per-event PipelineRun, or
raises a typed ResponderError. The orchestrator is the single place where
failures become terminal outcomes: the outcome names the stage being
entered when the failure happened and the failure kind.

A processing deadline spans all stages. Every awaited stage gets the time
left until the deadline; expiry cancels the stage and fails the event
with a timeout attributed to that stage.

Source:
- extractor/content.py (ContentExtractor)
- prompt/builder.py (PromptBuilder)
- llm/client.py (LLMClient)
- github/poster.py (ResponsePoster)
- delivery/store.py (DeliveryStore)
- state/machine.py (PipelineRun)
- events/emitter.py (EventEmitter)
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict

from issue_responder.config import ResponderSettings
from issue_responder.delivery.models import DeliveryOutcome
from issue_responder.delivery.store import DeliveryStore
from issue_responder.errors import (
    DeadlineExceededError,
    FailureKind,
    InvalidResponseError,
    ResponderError,
)
from issue_responder.events.emitter import EventEmitter
from issue_responder.events.models import EventType, PipelineEvent
from issue_responder.extractor.content import SUPPORTED_KINDS, ContentExtractor
from issue_responder.github.client import GitHubClient
from issue_responder.github.models import IssueComment, PostStatus
from issue_responder.github.poster import ResponsePoster
from issue_responder.llm.client import LLMClient
from issue_responder.llm.models import FinishReason
from issue_responder.prompt.builder import PromptBuilder
from issue_responder.retry import RetryPolicy
from issue_responder.state.machine import PipelineRun
from issue_responder.state.models import PipelineStage
from issue_responder.webhook.models import IssueEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OutcomeStatus(str, Enum):
    """Terminal result of handling an event."""

    POSTED = "posted"
    SKIPPED = "skipped"
    FAILED = "failed"


class Outcome(BaseModel):
    """Result of ``PipelineOrchestrator.handle``.

    Attributes:
        event_id: The handled event.
        status: posted, skipped or failed.
        stage: Final stage for posted/skipped; the stage being entered
            when the failure happened for failed.
        reason: Failure kind (failed only).
        retryable: Whether redelivering the event may succeed (failed only).
        message: Failure or skip description.
        comment_url: URL of the posted (or previously posted) comment.
        label: Label applied, for classification responses.
        truncated: Whether the prompt was cut to the word budget.
        history: Stages visited, starting with received.
        duration_seconds: Time spent handling the event.
    """

    model_config = ConfigDict(frozen=True)

    event_id: str
    status: OutcomeStatus
    stage: PipelineStage
    reason: Optional[FailureKind] = None
    retryable: bool = False
    message: Optional[str] = None
    comment_url: Optional[str] = None
    label: Optional[str] = None
    truncated: bool = False
    history: tuple[PipelineStage, ...] = ()
    duration_seconds: float = 0.0


class PipelineOrchestrator:
    """Drives issue events through extraction, prompting, completion and posting.

    All collaborators are injected; the orchestrator keeps no state
    between events other than what the delivery store holds.

    Attributes:
        settings: Immutable responder configuration.
        extractor: Normalizes event text.
        prompt_builder: Builds size-bounded prompts.
        llm_client: Generates completions.
        poster: Delivers completions at most once.
        delivery_store: Read for the early duplicate check.
        github_client: Used to fetch comment history.
        event_emitter: Emits pipeline events for observability.
        retry_policy: Applied to the comment history fetch.
    """

    def __init__(
        self,
        settings: ResponderSettings,
        extractor: ContentExtractor,
        prompt_builder: PromptBuilder,
        llm_client: LLMClient,
        poster: ResponsePoster,
        delivery_store: DeliveryStore,
        github_client: GitHubClient,
        event_emitter: EventEmitter,
        retry_policy: RetryPolicy,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.extractor = extractor
        self.prompt_builder = prompt_builder
        self.llm_client = llm_client
        self.poster = poster
        self.delivery_store = delivery_store
        self.github_client = github_client
        self.event_emitter = event_emitter
        self.retry_policy = retry_policy
        self._clock = clock

    async def handle(self, event: IssueEvent) -> Outcome:
        """Handle one issue event end to end.

        Never raises for pipeline failures; every failure is reported in
        the returned Outcome.

        Args:
            event: The issue event to answer.

        Returns:
            The terminal outcome.
        """
        started = self._clock()
        deadline = started + self.settings.processing_deadline
        run = PipelineRun(event.event_id)
        truncated = False

        logger.info(
            "Handling issue event",
            extra={
                "event_id": event.event_id,
                "issue_id": event.issue_id,
                "kind": event.kind.value,
            },
        )
        await self._emit_transition(event, None, PipelineStage.RECEIVED)

        try:
            existing = await self._within_deadline(
                self.delivery_store.get(event.event_id), deadline
            )
            if existing is not None and existing.outcome == DeliveryOutcome.POSTED:
                return await self._skip(
                    run,
                    event,
                    started,
                    "Event already posted",
                    comment_url=existing.comment_url,
                    label=existing.label,
                )

            comments = await self._fetch_history(event, deadline)
            self._check_deadline(deadline)
            content = self.extractor.extract(event, comments)
            await self._advance(run, event, PipelineStage.EXTRACTED)

            self._check_deadline(deadline)
            prompt = self.prompt_builder.build(content)
            truncated = prompt.truncated
            await self._advance(
                run,
                event,
                PipelineStage.PROMPT_BUILT,
                {"prompt_length": prompt.length, "truncated": prompt.truncated},
            )

            completion = await self._within_deadline(
                self.llm_client.complete(prompt), deadline
            )
            if completion.finish_reason != FinishReason.COMPLETE:
                raise InvalidResponseError(
                    f"Completion finished with reason: {completion.finish_reason.value}"
                )
            await self._advance(
                run,
                event,
                PipelineStage.COMPLETED,
                {"attempts": completion.attempts, "model": completion.model},
            )

            result = await self._within_deadline(
                self.poster.post(event, completion), deadline
            )
            if result.status == PostStatus.SKIPPED:
                return await self._skip(
                    run,
                    event,
                    started,
                    "Event already claimed",
                    comment_url=result.comment_url,
                    label=result.label,
                    truncated=truncated,
                )

            await self._advance(run, event, PipelineStage.POSTED)
            outcome = self._outcome(
                run,
                event,
                started,
                OutcomeStatus.POSTED,
                comment_url=result.comment_url,
                label=result.label,
                truncated=truncated,
            )
            await self._emit(
                EventType.COMPLETION,
                event,
                {
                    "duration_seconds": outcome.duration_seconds,
                    "comment_url": result.comment_url,
                    "label": result.label,
                    "recovered": result.recovered,
                },
            )
            logger.info(
                "Issue event answered",
                extra={
                    "event_id": event.event_id,
                    "issue_id": event.issue_id,
                    "comment_url": result.comment_url,
                    "label": result.label,
                },
            )
            return outcome

        except ResponderError as exc:
            return await self._fail(
                run, event, started, exc.kind, exc.message, truncated, exc.retryable
            )
        except Exception as exc:
            logger.exception(
                "Unexpected error while handling issue event",
                extra={"event_id": event.event_id, "stage": run.pending_stage.value},
            )
            return await self._fail(
                run, event, started, FailureKind.INTERNAL_ERROR, str(exc), truncated
            )

    async def _fetch_history(
        self, event: IssueEvent, deadline: float
    ) -> Sequence[IssueComment]:
        if not self.settings.include_history or event.kind not in SUPPORTED_KINDS:
            return ()
        return await self._within_deadline(
            self.retry_policy.run(
                lambda: self.github_client.list_comments(
                    event.owner, event.repo, event.issue_number
                ),
                description="list_comments",
            ),
            deadline,
        )

    # ------------------------------------------------------------------
    # Deadline
    # ------------------------------------------------------------------

    def _check_deadline(self, deadline: float) -> float:
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise DeadlineExceededError("Processing deadline exceeded")
        return remaining

    async def _within_deadline(self, awaitable: Awaitable[T], deadline: float) -> T:
        """Await a stage, cancelling it when the deadline passes."""
        try:
            remaining = self._check_deadline(deadline)
        except DeadlineExceededError:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise
        try:
            return await asyncio.wait_for(awaitable, timeout=remaining)
        except asyncio.TimeoutError as e:
            raise DeadlineExceededError("Processing deadline exceeded") from e

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _outcome(
        self,
        run: PipelineRun,
        event: IssueEvent,
        started: float,
        status: OutcomeStatus,
        stage: Optional[PipelineStage] = None,
        **fields: Any,
    ) -> Outcome:
        return Outcome(
            event_id=event.event_id,
            status=status,
            stage=stage or run.stage,
            history=tuple(run.stages()),
            duration_seconds=max(0.0, self._clock() - started),
            **fields,
        )

    async def _skip(
        self,
        run: PipelineRun,
        event: IssueEvent,
        started: float,
        message: str,
        comment_url: Optional[str] = None,
        label: Optional[str] = None,
        truncated: bool = False,
    ) -> Outcome:
        from_stage = run.stage
        await self._advance(run, event, PipelineStage.SKIPPED, {"reason": message})
        outcome = self._outcome(
            run,
            event,
            started,
            OutcomeStatus.SKIPPED,
            message=message,
            comment_url=comment_url,
            label=label,
            truncated=truncated,
        )
        logger.info(
            "Skipping issue event",
            extra={
                "event_id": event.event_id,
                "issue_id": event.issue_id,
                "skipped_at": from_stage.value,
                "reason": message,
            },
        )
        await self._emit(
            EventType.SKIPPED,
            event,
            {
                "duration_seconds": outcome.duration_seconds,
                "skipped_at": from_stage.value,
                "comment_url": comment_url,
            },
        )
        return outcome

    async def _fail(
        self,
        run: PipelineRun,
        event: IssueEvent,
        started: float,
        reason: FailureKind,
        message: str,
        truncated: bool,
        retryable: bool = False,
    ) -> Outcome:
        """Transition to FAILED and emit an error or timeout event."""
        stage = run.pending_stage
        logger.warning(
            "Pipeline stage failed",
            extra={
                "event_id": event.event_id,
                "issue_id": event.issue_id,
                "stage": stage.value,
                "reason": reason.value,
                "error_message": message,
            },
        )

        await self._advance(
            run,
            event,
            PipelineStage.FAILED,
            {"stage": stage.value, "reason": reason.value},
        )
        outcome = self._outcome(
            run,
            event,
            started,
            OutcomeStatus.FAILED,
            stage=stage,
            reason=reason,
            retryable=retryable,
            message=message,
            truncated=truncated,
        )

        event_type = EventType.TIMEOUT if reason == FailureKind.TIMEOUT else EventType.ERROR
        await self._emit(
            event_type,
            event,
            {
                "stage": stage.value,
                "reason": reason.value,
                "retryable": retryable,
                "error_message": message,
                "duration_seconds": outcome.duration_seconds,
            },
        )
        return outcome

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _advance(
        self,
        run: PipelineRun,
        event: IssueEvent,
        to_stage: PipelineStage,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Transition the run and emit a state-transition event."""
        transition = run.transition(to_stage, details)
        await self._emit_transition(event, transition.from_stage, to_stage)

    async def _emit_transition(
        self,
        event: IssueEvent,
        from_stage: Optional[PipelineStage],
        to_stage: PipelineStage,
    ) -> None:
        await self._emit(
            EventType.STATE_TRANSITION,
            event,
            {
                "from_stage": from_stage.value if from_stage else None,
                "to_stage": to_stage.value,
            },
        )

    async def _emit(
        self,
        event_type: EventType,
        event: IssueEvent,
        details: Dict[str, Any],
    ) -> None:
        await self._safe_emit(
            PipelineEvent(
                event_type=event_type,
                event_id=event.event_id,
                issue_id=event.issue_id,
                repository=event.repository,
                details=details,
            )
        )

    async def _safe_emit(self, event: PipelineEvent) -> None:
        """Emit an event, swallowing exceptions to avoid disrupting the pipeline."""
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit pipeline event",
                extra={
                    "event_type": event.event_type.value,
                    "event_id": event.event_id,
                },
            )
