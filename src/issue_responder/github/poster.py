"""Response posting with at-most-once delivery.

The ResponsePoster turns a completion into exactly one GitHub side effect
per event id: a comment, or a label when labelling is enabled (non-empty
``allowed_labels``) and the completion is a classification (first line
``LABEL: <name>``).

Delivery flow:
1. Claim the event id in the DeliveryStore. A posted record, an active
   claim or a permanent failure means the event was handled elsewhere;
   the poster returns SKIPPED without any network call.
2. Post the comment (or apply the label) under the shared RetryPolicy.
   Each comment carries a hidden delivery marker. When an attempt fails
   ambiguously (timeout, connection error, 5xx) or the claim took over an
   earlier attempt, the next attempt first looks for the marker in the
   issue comments and reports the existing comment instead of posting
   twice.
3. Record the outcome under the claim token: posted, or failed with the
   error's retryable flag. If the claim was taken over in the meantime,
   the record belongs to the new holder and is left untouched.
"""

import asyncio
import logging
import re
from typing import Optional, Sequence

from issue_responder.delivery.store import DeliveryNotClaimedError, DeliveryStore
from issue_responder.errors import (
    InvalidResponseError,
    NetworkError,
    RequestTimeoutError,
    ResponderError,
)
from issue_responder.github.client import GitHubClient
from issue_responder.github.models import PostResult, PostStatus
from issue_responder.llm.models import Completion
from issue_responder.markers import delivery_marker, find_marker
from issue_responder.retry import RetryPolicy
from issue_responder.webhook.models import IssueEvent


logger = logging.getLogger(__name__)


LABEL_PATTERN = re.compile(r"^\s*LABEL:\s*(\S.*?)\s*$", re.IGNORECASE)

FOOTER_TEMPLATE = "This result is generated by issue-responder. Triggered by @{author}"

AMBIGUOUS_ERRORS = (RequestTimeoutError, NetworkError)


def parse_label(text: str, allowed_labels: Sequence[str] = ()) -> Optional[str]:
    """Return the label a classification completion asks for, if any.

    Args:
        text: Completion text.
        allowed_labels: Labels that may be applied. Empty disables labelling.

    Returns:
        The label name, or None when the completion is a regular reply
        or labelling is disabled.

    Raises:
        InvalidResponseError: If the label is not in allowed_labels.
    """
    if not allowed_labels:
        return None

    first_line = text.strip().split("\n", 1)[0]
    match = LABEL_PATTERN.match(first_line)
    if match is None:
        return None

    label = match.group(1)
    for allowed in allowed_labels:
        if allowed.casefold() == label.casefold():
            return allowed
    raise InvalidResponseError(f"Label not allowed: {label}")


def render_comment(event: IssueEvent, text: str) -> str:
    """Render the comment body posted for an event.

    Layout follows the summary comments: title and link, the generated
    text, a footer naming who triggered the response, and the hidden
    delivery marker.
    """
    parts = []
    if event.title:
        header = event.title
        if event.html_url:
            header = f"{header}\n{event.html_url}"
        parts.append(header)
    parts.append(text.strip())
    parts.append(FOOTER_TEMPLATE.format(author=event.author))
    parts.append(delivery_marker(event.event_id))
    return "\n\n".join(parts)


class ResponsePoster:
    """Posts completions back to GitHub at most once per event id.

    Attributes:
        github_client: Client for the GitHub REST API.
        delivery_store: Store holding DeliveryRecords.
        retry_policy: Policy applied to transient GitHub failures.
        allowed_labels: Labels a classification completion may apply.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        delivery_store: DeliveryStore,
        retry_policy: RetryPolicy,
        allowed_labels: Sequence[str] = (),
    ):
        self.github_client = github_client
        self.delivery_store = delivery_store
        self.retry_policy = retry_policy
        self.allowed_labels = tuple(allowed_labels)

    async def post(self, event: IssueEvent, completion: Completion) -> PostResult:
        """Deliver a completion for an event.

        Args:
            event: The event being answered.
            completion: The completion to post.

        Returns:
            PostResult with status POSTED, or SKIPPED if the event id was
            already claimed, posted or permanently failed.

        Raises:
            InvalidResponseError: The completion asks for a disallowed label.
            ResponderError: Posting failed; the failure is recorded first.
        """
        label = parse_label(completion.text, self.allowed_labels)

        claim = await self.delivery_store.claim(event.event_id)
        if not claim.claimed:
            existing = claim.existing
            logger.info(
                "Skipping delivery, event already handled",
                extra={
                    "event_id": event.event_id,
                    "outcome": existing.outcome.value if existing else None,
                },
            )
            return PostResult(
                status=PostStatus.SKIPPED,
                comment_url=existing.comment_url if existing else None,
                label=existing.label if existing else None,
            )

        try:
            if label is not None:
                result = await self._apply_label(event, label)
            else:
                result = await self._post_comment(event, completion, claim.reclaimed)
        except ResponderError as exc:
            await self._record_failure(
                event.event_id, claim.token, exc.message, exc.retryable
            )
            raise
        except asyncio.CancelledError:
            await self._record_failure(
                event.event_id, claim.token, "Delivery cancelled", True
            )
            raise
        except Exception as exc:
            await self._record_failure(event.event_id, claim.token, str(exc), False)
            raise

        try:
            await self.delivery_store.mark_posted(
                event.event_id,
                claim.token,
                comment_url=result.comment_url,
                label=result.label,
            )
        except DeliveryNotClaimedError:
            logger.warning(
                "Delivery claim was taken over before the post was recorded",
                extra={"event_id": event.event_id, "comment_url": result.comment_url},
            )
            return result
        logger.info(
            "Response delivered",
            extra={
                "event_id": event.event_id,
                "issue_id": event.issue_id,
                "comment_url": result.comment_url,
                "label": result.label,
                "recovered": result.recovered,
            },
        )
        return result

    async def _post_comment(
        self,
        event: IssueEvent,
        completion: Completion,
        reclaimed: bool,
    ) -> PostResult:
        body = render_comment(event, completion.text)
        check_existing = reclaimed

        async def attempt() -> PostResult:
            nonlocal check_existing
            if check_existing:
                existing = await self._find_posted_comment(event)
                if existing is not None:
                    return existing
            try:
                comment = await self.github_client.create_comment(
                    event.owner, event.repo, event.issue_number, body
                )
            except AMBIGUOUS_ERRORS:
                check_existing = True
                raise
            return PostResult(comment_id=comment.id, comment_url=comment.html_url)

        return await self.retry_policy.run(attempt, description="post_comment")

    async def _find_posted_comment(self, event: IssueEvent) -> Optional[PostResult]:
        comments = await self.github_client.list_comments(
            event.owner, event.repo, event.issue_number
        )
        for comment in comments:
            if find_marker(comment.body) == event.event_id:
                logger.info(
                    "Found comment from an earlier attempt",
                    extra={"event_id": event.event_id, "comment_id": comment.id},
                )
                return PostResult(
                    comment_id=comment.id,
                    comment_url=comment.html_url,
                    recovered=True,
                )
        return None

    async def _apply_label(self, event: IssueEvent, label: str) -> PostResult:
        await self.retry_policy.run(
            lambda: self.github_client.add_labels(
                event.owner, event.repo, event.issue_number, [label]
            ),
            description="add_labels",
        )
        return PostResult(label=label)

    async def _record_failure(
        self, event_id: str, token: str, error: str, retryable: bool
    ) -> None:
        try:
            await self.delivery_store.mark_failed(event_id, token, error, retryable)
        except Exception as e:
            logger.error(
                "Failed to record delivery failure",
                extra={"event_id": event_id, "error": str(e)},
            )
        logger.warning(
            "Delivery failed",
            extra={"event_id": event_id, "error": error, "retryable": retryable},
        )
