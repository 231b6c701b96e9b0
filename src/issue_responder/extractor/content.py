"""Content extraction and cleaning for issue events.

The extractor turns an IssueEvent into CanonicalContent using a fixed,
ordered rule set. The rules are plain pattern matches so that the same
input always produces the same output:

1. Normalize line endings to ``\\n`` and drop a leading byte order mark.
2. Remove HTML comments (issue template hints, delivery markers).
3. Outside fenced code blocks:
   a. drop quoted reply lines (first non-blank character is ``>``),
   b. drop e-mail reply headers (``On ... wrote:``),
   c. cut everything from an e-mail signature delimiter (``-- ``) onward,
   d. drop known boilerplate footer lines.
4. Remove the trigger phrase (comment text only).
5. Strip trailing whitespace, collapse runs of blank lines, strip.

The extractor has no side effects.
"""

import logging
import re
from typing import Iterable, List, Optional

from issue_responder.errors import MalformedInputError
from issue_responder.extractor.models import CanonicalContent, HistoryEntry
from issue_responder.github.models import IssueComment
from issue_responder.markers import find_marker
from issue_responder.webhook.models import EventKind, IssueEvent


logger = logging.getLogger(__name__)


SUPPORTED_KINDS = frozenset({EventKind.OPENED, EventKind.EDITED, EventKind.COMMENTED})

HTML_COMMENT_PATTERN = re.compile(r"<!--.*?-->", re.DOTALL)
FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")
QUOTE_PATTERN = re.compile(r"^\s*>")
REPLY_HEADER_PATTERN = re.compile(r"^\s*On .+ wrote:\s*$")
SIGNATURE_PATTERN = re.compile(r"^-- ?$")
BOILERPLATE_PATTERNS = (
    re.compile(r"^\s*Sent from my \S+", re.IGNORECASE),
    re.compile(r"^\s*Get Outlook for \S+", re.IGNORECASE),
    re.compile(r"^\s*Reply to this email directly", re.IGNORECASE),
    re.compile(r"^\s*You are receiving this because", re.IGNORECASE),
    re.compile(r"^\s*This result is generated by ", re.IGNORECASE),
)
BLANK_RUN_PATTERN = re.compile(r"\n{3,}")
WHITESPACE_PATTERN = re.compile(r"\s+")


def _filter_lines(lines: Iterable[str]) -> List[str]:
    kept: List[str] = []
    in_fence = False
    for line in lines:
        if FENCE_PATTERN.match(line):
            in_fence = not in_fence
            kept.append(line)
            continue
        if in_fence:
            kept.append(line)
            continue
        if SIGNATURE_PATTERN.match(line):
            break
        if QUOTE_PATTERN.match(line) or REPLY_HEADER_PATTERN.match(line):
            continue
        if any(pattern.match(line) for pattern in BOILERPLATE_PATTERNS):
            continue
        kept.append(line)
    return kept


def clean_text(text: Optional[str], trigger_phrase: str = "") -> str:
    """Apply the cleaning rules to a raw markdown body.

    Args:
        text: Raw body text; None is treated as empty.
        trigger_phrase: Phrase to remove from the text, if non-empty.

    Returns:
        The cleaned text, possibly empty.
    """
    if not text:
        return ""

    text = text.replace("\r\n", "\n").replace("\r", "\n").lstrip("\ufeff")
    text = HTML_COMMENT_PATTERN.sub("", text)

    lines = _filter_lines(text.split("\n"))
    text = "\n".join(line.rstrip() for line in lines)

    if trigger_phrase:
        text = text.replace(trigger_phrase, "")
        text = "\n".join(line.rstrip() for line in text.split("\n"))

    text = BLANK_RUN_PATTERN.sub("\n\n", text)
    return text.strip()


class ContentExtractor:
    """Builds CanonicalContent from issue events.

    Attributes:
        trigger_phrase: Phrase stripped from comment text.
    """

    def __init__(self, trigger_phrase: str = ""):
        self.trigger_phrase = trigger_phrase

    def extract(
        self,
        event: IssueEvent,
        comments: Iterable[IssueComment] = (),
    ) -> CanonicalContent:
        """Normalize an event and its comment history.

        Args:
            event: The issue event to normalize.
            comments: Prior issue comments, oldest first.

        Returns:
            The canonical content for the event.

        Raises:
            MalformedInputError: If the event kind is not answered, the
                title is empty, or no text remains after cleaning.
        """
        if event.kind not in SUPPORTED_KINDS:
            raise MalformedInputError(f"Unsupported event kind: {event.kind.value}")

        title = WHITESPACE_PATTERN.sub(" ", event.title).strip()
        if not title:
            raise MalformedInputError("Issue title is empty")

        body = clean_text(event.issue_body)
        request = ""
        if event.kind == EventKind.COMMENTED:
            request = clean_text(event.body, self.trigger_phrase)

        history = self._clean_history(event, comments)

        if event.kind == EventKind.COMMENTED:
            if not (body or request or history):
                raise MalformedInputError("Issue and comment are empty after cleaning")
        elif not body:
            raise MalformedInputError("Issue body is empty after cleaning")

        content = CanonicalContent(
            issue_number=event.issue_number,
            repository=event.repository,
            kind=event.kind,
            title=title,
            body=body,
            labels=tuple(event.labels),
            author=event.issue_author or event.author,
            request=request,
            requested_by=event.author,
            history=history,
        )

        logger.debug(
            "Extracted canonical content",
            extra={
                "event_id": event.event_id,
                "body_length": len(body),
                "history_entries": len(history),
            },
        )
        return content

    def _clean_history(
        self,
        event: IssueEvent,
        comments: Iterable[IssueComment],
    ) -> tuple[HistoryEntry, ...]:
        entries = []
        for comment in comments:
            if event.comment_id is not None and comment.id == event.comment_id:
                continue
            if find_marker(comment.body) is not None:
                continue
            text = clean_text(comment.body, self.trigger_phrase)
            if text:
                entries.append(HistoryEntry(author=comment.author or "unknown", text=text))
        return tuple(entries)
