"""GitHub webhook handler for the issue responder.

This module provides the WebhookHandler class for parsing GitHub webhook
deliveries into IssueEvent records. Signature validation is performed by
the hosting layer before events reach this service, so incoming payloads
are trusted.

Supported deliveries:
- ``issues``: opened, edited. Label changes, closes and reopens carry
  nothing to answer and are ignored.
- ``issue_comment``: created (only when the comment contains the trigger
  phrase, if one is configured)

Deliveries are ignored (None is returned) for pull request comments,
comments written by bots or by the responder itself, and malformed
payloads.

GitHub Webhook Payload Structure (issue_comment event):
{
  "action": "created",
  "issue": {
    "number": 123,
    "title": "Issue title",
    "body": "Issue body",
    "html_url": "https://github.com/owner/repo/issues/123",
    "labels": [{"name": "bug"}],
    "user": {"login": "username"}
  },
  "comment": {"id": 1, "body": "@flows_summarize", "user": {"login": "someone"}},
  "repository": {"full_name": "owner/repo"},
  "sender": {"login": "someone"}
}
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from issue_responder.markers import find_marker
from issue_responder.webhook.models import EventKind, IssueEvent

logger = logging.getLogger(__name__)


ISSUE_ACTIONS = {
    "opened": EventKind.OPENED,
    "edited": EventKind.EDITED,
}


class WebhookHandler:
    """Parser for GitHub issue and issue comment deliveries.

    Attributes:
        trigger_phrase: Phrase a comment must contain to be answered.
            An empty string answers every new comment.
    """

    def __init__(self, trigger_phrase: str = "") -> None:
        self.trigger_phrase = trigger_phrase

    def parse_event(
        self,
        event_name: str,
        payload: Dict[str, Any],
        delivery_id: Optional[str] = None,
    ) -> Optional[IssueEvent]:
        """Parse a webhook delivery into an IssueEvent.

        Args:
            event_name: Value of the X-GitHub-Event header.
            payload: The raw webhook payload as a dictionary.
            delivery_id: Value of the X-GitHub-Delivery header. When
                missing, a deterministic id is derived from the payload.

        Returns:
            IssueEvent if the delivery should be processed, None otherwise.
        """
        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return None

        if event_name == "issues":
            return self._parse_issue_delivery(payload, delivery_id)
        if event_name == "issue_comment":
            return self._parse_comment_delivery(payload, delivery_id)

        logger.debug("Ignoring unsupported event type: %s", event_name)
        return None

    def _parse_issue_delivery(
        self, payload: Dict[str, Any], delivery_id: Optional[str]
    ) -> Optional[IssueEvent]:
        kind = ISSUE_ACTIONS.get(payload.get("action"))
        if kind is None:
            logger.debug("Ignoring issues action: %s", payload.get("action"))
            return None

        issue = self._extract_issue(payload)
        repository = self._extract_repository(payload)
        if issue is None or repository is None:
            return None

        issue_author = self._extract_user_login(issue.get("user"), "issue author")
        if issue_author is None:
            return None
        author = self._extract_user_login(payload.get("sender"), "sender") or issue_author

        body = self._text(issue.get("body"))
        event_id = delivery_id or (
            f"issues:{repository}#{issue['number']}:{kind.value}:"
            f"{issue.get('updated_at', '')}"
        )

        return self._build_event(
            event_id=event_id,
            repository=repository,
            issue_number=issue["number"],
            kind=kind,
            author=author,
            body=body,
            title=self._text(issue.get("title")).strip(),
            labels=tuple(self._extract_labels(issue.get("labels", []))),
            issue_author=issue_author,
            issue_body=body,
            html_url=self._text(issue.get("html_url")),
        )

    def _parse_comment_delivery(
        self, payload: Dict[str, Any], delivery_id: Optional[str]
    ) -> Optional[IssueEvent]:
        if payload.get("action") != "created":
            logger.debug("Ignoring non-created issue comment event")
            return None

        issue = self._extract_issue(payload)
        repository = self._extract_repository(payload)
        comment = payload.get("comment")
        if issue is None or repository is None:
            return None
        if not isinstance(comment, dict):
            logger.warning("Missing or invalid 'comment' field in payload")
            return None

        if "pull_request" in issue:
            logger.debug("Ignoring comment on pull request")
            return None

        body = self._text(comment.get("body"))
        if find_marker(body) is not None:
            logger.debug("Ignoring comment posted by the responder")
            return None

        user = comment.get("user")
        if self._is_bot(user):
            logger.debug("Ignoring comment from bot account")
            return None

        if self.trigger_phrase and self.trigger_phrase not in body:
            logger.info("Ignoring comment without trigger phrase")
            return None

        author = self._extract_user_login(user, "comment author")
        issue_author = self._extract_user_login(issue.get("user"), "issue author")
        if author is None or issue_author is None:
            return None

        comment_id = comment.get("id") if isinstance(comment.get("id"), int) else None
        event_id = delivery_id or (
            f"issue_comment:{repository}#{issue['number']}:{comment.get('id')}"
        )

        return self._build_event(
            event_id=event_id,
            repository=repository,
            issue_number=issue["number"],
            kind=EventKind.COMMENTED,
            author=author,
            body=body,
            title=self._text(issue.get("title")).strip(),
            labels=tuple(self._extract_labels(issue.get("labels", []))),
            issue_author=issue_author,
            issue_body=self._text(issue.get("body")),
            html_url=self._text(issue.get("html_url")),
            comment_id=comment_id,
        )

    def _build_event(self, **fields: Any) -> Optional[IssueEvent]:
        try:
            event = IssueEvent(**fields)
        except ValidationError as e:
            logger.warning("Webhook payload failed validation: %s", e)
            return None

        logger.info(
            "Parsed issue event: kind=%s, issue=%s",
            event.kind.value,
            event.issue_id,
            extra={"event_id": event.event_id},
        )
        return event

    def _extract_issue(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        issue = payload.get("issue")
        if not isinstance(issue, dict):
            logger.warning("Missing or invalid 'issue' field in payload")
            return None

        number = issue.get("number")
        if not isinstance(number, int) or isinstance(number, bool) or number <= 0:
            logger.warning("Invalid issue number: %s", number)
            return None
        return issue

    def _extract_repository(self, payload: Dict[str, Any]) -> Optional[str]:
        """Return "{owner}/{repo}" from the repository object."""
        repo_data = payload.get("repository")
        if not isinstance(repo_data, dict):
            logger.warning("Missing or invalid 'repository' field in payload")
            return None

        full_name = repo_data.get("full_name")
        if isinstance(full_name, str) and full_name.count("/") == 1:
            return full_name.strip()

        name = repo_data.get("name")
        owner = self._extract_user_login(repo_data.get("owner"), "repository owner")
        if not isinstance(name, str) or not name.strip() or owner is None:
            logger.warning("Invalid repository data: %s", repo_data)
            return None
        return f"{owner}/{name.strip()}"

    def _extract_labels(self, labels_data: Any) -> List[str]:
        """Extract label names from the labels array.

        GitHub sends labels as an array of objects with 'name' field:
        [{"name": "bug"}, {"name": "question"}]
        """
        if not isinstance(labels_data, list):
            return []

        labels = []
        for label in labels_data:
            if isinstance(label, dict):
                name = label.get("name")
                if isinstance(name, str) and name.strip():
                    labels.append(name.strip())
            elif isinstance(label, str) and label.strip():
                labels.append(label.strip())

        return labels

    def _extract_user_login(self, user_data: Any, context: str) -> Optional[str]:
        if not isinstance(user_data, dict):
            logger.warning("Missing or invalid %s data", context)
            return None

        login = user_data.get("login")
        if not isinstance(login, str) or not login.strip():
            logger.warning("Invalid or empty %s login: %s", context, login)
            return None

        return login.strip()

    @staticmethod
    def _is_bot(user_data: Any) -> bool:
        if not isinstance(user_data, dict):
            return False
        login = user_data.get("login")
        return user_data.get("type") == "Bot" or (
            isinstance(login, str) and login.endswith("[bot]")
        )

    @staticmethod
    def _text(value: Any) -> str:
        return value if isinstance(value, str) else ""
