"""GitHub API data models used by the responder."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class IssueComment(BaseModel):
    """A comment on a GitHub issue.

    Attributes:
        id: GitHub comment id.
        author: Login of the comment author.
        body: Raw markdown body.
        html_url: Browser URL of the comment.
        created_at: When the comment was created.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    author: str = ""
    body: str = ""
    html_url: str = ""
    created_at: Optional[datetime] = None

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "IssueComment":
        """Build an IssueComment from a GitHub API comment object."""
        user = data.get("user") or {}
        return cls(
            id=data["id"],
            author=user.get("login") or "",
            body=data.get("body") or "",
            html_url=data.get("html_url") or "",
            created_at=data.get("created_at"),
        )


class PostStatus(str, Enum):
    """Whether the poster delivered the response."""

    POSTED = "posted"
    SKIPPED = "skipped"


class PostResult(BaseModel):
    """Result of a delivery attempt.

    Attributes:
        status: POSTED, or SKIPPED when the event was already claimed.
        comment_id: Id of the created comment, for comment deliveries.
        comment_url: Browser URL of the created comment.
        label: Label applied, for classification deliveries.
        recovered: True when an earlier attempt's comment was found
            instead of creating a new one.
    """

    status: PostStatus = PostStatus.POSTED
    comment_id: Optional[int] = None
    comment_url: Optional[str] = None
    label: Optional[str] = None
    recovered: bool = False
