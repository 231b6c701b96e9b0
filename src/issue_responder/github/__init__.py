"""GitHub integration for the issue responder.

This module provides:
- GitHubClient: async REST client for comments and labels
- ResponsePoster: at-most-once delivery of completions
"""

from issue_responder.github.client import GitHubClient
from issue_responder.github.models import IssueComment, PostResult, PostStatus
from issue_responder.github.poster import ResponsePoster, parse_label, render_comment

__all__ = [
    "GitHubClient",
    "IssueComment",
    "PostResult",
    "PostStatus",
    "ResponsePoster",
    "parse_label",
    "render_comment",
]
