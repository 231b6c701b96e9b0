"""GitHub webhook event models for the issue responder.

This module defines the data models for the issue events that enter the
pipeline. Events are produced by the webhook handler (or any other
delivery collaborator) and are immutable once constructed.

The models use Pydantic for validation, consistent with the responder's
configuration approach in config.py.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EventKind(str, Enum):
    """Kinds of issue activity delivered to the pipeline.

    Attributes:
        OPENED: A new issue was created.
        EDITED: The issue title or body was modified.
        COMMENTED: A new comment was added to the issue.
        LABELED: A label was added. Never answered.
        CLOSED: The issue was closed. Never answered.
        REOPENED: The issue was reopened. Never answered.
    """

    OPENED = "opened"
    EDITED = "edited"
    COMMENTED = "commented"
    LABELED = "labeled"
    CLOSED = "closed"
    REOPENED = "reopened"


class IssueEvent(BaseModel):
    """Issue event received from GitHub.

    For comment events ``body`` and ``author`` describe the comment, while
    ``issue_body`` and ``issue_author`` describe the issue it belongs to.
    For issue events the two pairs are identical.

    Attributes:
        event_id: Unique delivery identifier, used for idempotency.
        repository: Full repository path in format "{owner}/{repo}".
        issue_number: The issue number within the repository.
        kind: The type of activity.
        author: Login of the user who caused the event.
        body: Raw body text of the issue or comment.
        timestamp: When the event was received (UTC).
        title: The issue title.
        labels: Label names currently attached to the issue.
        issue_author: Login of the issue creator.
        issue_body: Raw body of the issue itself.
        html_url: Browser URL of the issue.
        comment_id: GitHub id of the triggering comment, if any.
    """

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(
        ...,
        min_length=1,
        description="Unique delivery identifier used for idempotency",
    )

    repository: str = Field(
        ...,
        pattern=r"^[^/\s]+/[^/\s]+$",
        description='Full repository path in format "{owner}/{repo}"',
    )

    issue_number: int = Field(
        ...,
        gt=0,
        description="The issue number within the repository",
    )

    kind: EventKind = Field(
        ...,
        description="The type of issue activity",
    )

    author: str = Field(
        ...,
        min_length=1,
        description="Login of the user who caused the event",
    )

    body: str = Field(
        default="",
        description="Raw body text of the issue or comment",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event was received (UTC)",
    )

    title: str = Field(
        default="",
        description="The issue title",
    )

    labels: tuple[str, ...] = Field(
        default=(),
        description="Label names attached to the issue",
    )

    issue_author: str = Field(
        default="",
        description="Login of the issue creator",
    )

    issue_body: str = Field(
        default="",
        description="Raw body of the issue itself",
    )

    html_url: str = Field(
        default="",
        description="Browser URL of the issue",
    )

    comment_id: Optional[int] = Field(
        default=None,
        description="GitHub id of the triggering comment (comment events only)",
    )

    @property
    def owner(self) -> str:
        """Repository owner (user or organization)."""
        return self.repository.split("/", 1)[0]

    @property
    def repo(self) -> str:
        """Repository name without owner prefix."""
        return self.repository.split("/", 1)[1]

    @property
    def issue_id(self) -> str:
        """Canonical issue identifier in format "{owner}/{repo}#{number}"."""
        return f"{self.repository}#{self.issue_number}"
