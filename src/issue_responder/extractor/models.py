"""Canonical content models produced by the content extractor."""

from pydantic import BaseModel, ConfigDict, Field

from issue_responder.webhook.models import EventKind


class HistoryEntry(BaseModel):
    """A cleaned prior comment on the issue.

    Attributes:
        author: Login of the commenter.
        text: Cleaned comment text (never empty).
    """

    model_config = ConfigDict(frozen=True)

    author: str
    text: str = Field(..., min_length=1)


class CanonicalContent(BaseModel):
    """Normalized text of an issue event, ready for prompt construction.

    Derived deterministically from an IssueEvent (plus fetched comment
    history) and owned by the pipeline invocation that created it.

    Attributes:
        issue_number: The issue number within the repository.
        repository: Full repository path in format "{owner}/{repo}".
        kind: The kind of event being answered.
        title: Issue title with whitespace collapsed.
        body: Cleaned issue body.
        labels: Existing label names.
        author: Login of the issue creator.
        request: Cleaned text of the triggering comment ("" for issue events).
        requested_by: Login of the user who caused the event.
        history: Cleaned prior comments in chronological order.
    """

    model_config = ConfigDict(frozen=True)

    issue_number: int = Field(..., gt=0)
    repository: str
    kind: EventKind
    title: str = Field(..., min_length=1)
    body: str = ""
    labels: tuple[str, ...] = ()
    author: str
    request: str = ""
    requested_by: str
    history: tuple[HistoryEntry, ...] = ()
