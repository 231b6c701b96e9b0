"""GitHub webhook handling for the issue responder.

This module receives and parses GitHub webhook deliveries:
- issues (opened, edited)
- issue_comment (created)

The webhook handler trusts that signature validation is performed by the
hosting layer before events reach this service.
"""

from .handler import WebhookHandler
from .models import EventKind, IssueEvent

__all__ = [
    "EventKind",
    "IssueEvent",
    "WebhookHandler",
]
