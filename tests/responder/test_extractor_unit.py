"""Unit tests for content cleaning and the ContentExtractor."""

from typing import Optional, Sequence

import pytest

from issue_responder.errors import MalformedInputError
from issue_responder.extractor import ContentExtractor, clean_text
from issue_responder.github.models import IssueComment
from issue_responder.markers import delivery_marker
from issue_responder.webhook.models import EventKind, IssueEvent


def _make_event(
    kind: EventKind = EventKind.OPENED,
    title: str = "Crash on startup",
    issue_body: str = "The app crashes when I start it.",
    body: Optional[str] = None,
    author: str = "reporter",
    issue_author: str = "reporter",
    labels: Sequence[str] = ("bug",),
    comment_id: Optional[int] = None,
) -> IssueEvent:
    return IssueEvent(
        event_id="delivery-1",
        repository="acme/widgets",
        issue_number=7,
        kind=kind,
        author=author,
        body=issue_body if body is None else body,
        title=title,
        labels=tuple(labels),
        issue_author=issue_author,
        issue_body=issue_body,
        comment_id=comment_id,
    )


def _comment(comment_id: int, body: str, author: str = "helper") -> IssueComment:
    return IssueComment(id=comment_id, author=author, body=body)


class TestCleanText:
    def test_empty_and_none(self):
        assert clean_text(None) == ""
        assert clean_text("") == ""
        assert clean_text("   \n\n  ") == ""

    def test_normalizes_line_endings_and_bom(self):
        assert clean_text("\ufeffline one\r\nline two\rline three") == (
            "line one\nline two\nline three"
        )

    def test_removes_html_comments_across_lines(self):
        text = "Before\n<!-- template hint\nspanning lines -->\nAfter"
        assert clean_text(text) == "Before\n\nAfter"

    def test_removes_delivery_markers(self):
        text = "Summary text\n\n" + delivery_marker("abc-123")
        assert clean_text(text) == "Summary text"

    def test_drops_quoted_reply_lines(self):
        text = "> previous message\n  > nested quote\nMy answer"
        assert clean_text(text) == "My answer"

    def test_drops_reply_headers(self):
        text = "Thanks!\nOn Mon, Jan 1, 2024 at 10:00 AM Someone <a@b.c> wrote:\n> quoted"
        assert clean_text(text) == "Thanks!"

    def test_cuts_at_signature_delimiter(self):
        text = "Real content\n-- \nJane Doe\nCEO"
        assert clean_text(text) == "Real content"

    def test_drops_boilerplate_footers(self):
        text = "\n".join(
            [
                "Useful line",
                "Sent from my iPhone",
                "Get Outlook for Android",
                "Reply to this email directly, view it on GitHub.",
                "You are receiving this because you were mentioned.",
                "This result is generated by flows.network. Triggered by @x",
            ]
        )
        assert clean_text(text) == "Useful line"

    def test_keeps_fenced_code_untouched(self):
        text = "Run this:\n```\n> not a quote\n--\n```\nDone"
        assert clean_text(text) == text

    def test_collapses_blank_runs_and_strips_trailing_spaces(self):
        text = "first   \n\n\n\nsecond\t\n"
        assert clean_text(text) == "first\n\nsecond"

    def test_removes_trigger_phrase(self):
        assert clean_text("@flows_summarize please", "@flows_summarize") == "please"
        assert clean_text("@flows_summarize", "@flows_summarize") == ""

    def test_trigger_phrase_kept_when_not_configured(self):
        assert clean_text("@flows_summarize please") == "@flows_summarize please"

    def test_is_idempotent(self):
        text = "Intro\r\n> quote\n\n\n\nBody <!-- x -->\nSent from my phone"
        once = clean_text(text)
        assert clean_text(once) == once


class TestContentExtractor:
    def test_opened_issue(self):
        extractor = ContentExtractor()
        content = extractor.extract(_make_event(title="  Crash   on\tstartup "))

        assert content.title == "Crash on startup"
        assert content.body == "The app crashes when I start it."
        assert content.labels == ("bug",)
        assert content.author == "reporter"
        assert content.request == ""
        assert content.history == ()
        assert content.issue_number == 7
        assert content.repository == "acme/widgets"

    def test_comment_event_uses_issue_body_and_request(self):
        extractor = ContentExtractor(trigger_phrase="@flows_summarize")
        event = _make_event(
            kind=EventKind.COMMENTED,
            body="@flows_summarize what is the status?",
            author="maintainer",
            comment_id=99,
        )

        content = extractor.extract(event)

        assert content.body == "The app crashes when I start it."
        assert content.request == "what is the status?"
        assert content.requested_by == "maintainer"
        assert content.author == "reporter"

    def test_history_excludes_trigger_marker_and_empty_comments(self):
        extractor = ContentExtractor(trigger_phrase="@flows_summarize")
        event = _make_event(kind=EventKind.COMMENTED, body="@flows_summarize", comment_id=3)
        comments = [
            _comment(1, "I can reproduce this on Linux.", author="alice"),
            _comment(2, "Old summary\n" + delivery_marker("older"), author="bot"),
            _comment(3, "@flows_summarize", author="maintainer"),
            _comment(4, "> quoted only", author="bob"),
            _comment(5, "Fixed by pinning the dependency.", author="carol"),
        ]

        content = extractor.extract(event, comments)

        assert [(h.author, h.text) for h in content.history] == [
            ("alice", "I can reproduce this on Linux."),
            ("carol", "Fixed by pinning the dependency."),
        ]

    @pytest.mark.parametrize(
        "kind", [EventKind.LABELED, EventKind.CLOSED, EventKind.REOPENED]
    )
    def test_unsupported_kinds_are_malformed(self, kind):
        with pytest.raises(MalformedInputError):
            ContentExtractor().extract(_make_event(kind=kind))

    def test_empty_title_is_malformed(self):
        with pytest.raises(MalformedInputError):
            ContentExtractor().extract(_make_event(title="   "))

    def test_body_empty_after_cleaning_is_malformed(self):
        event = _make_event(issue_body="<!-- only a template hint -->\n> quote")
        with pytest.raises(MalformedInputError):
            ContentExtractor().extract(event)

    def test_comment_on_empty_issue_with_request_is_accepted(self):
        event = _make_event(
            kind=EventKind.COMMENTED,
            issue_body="",
            body="Could someone summarize?",
            comment_id=1,
        )
        content = ContentExtractor().extract(event)
        assert content.body == ""
        assert content.request == "Could someone summarize?"

    def test_comment_with_nothing_left_is_malformed(self):
        event = _make_event(
            kind=EventKind.COMMENTED,
            issue_body="",
            body="@flows_summarize",
            comment_id=1,
        )
        with pytest.raises(MalformedInputError):
            ContentExtractor(trigger_phrase="@flows_summarize").extract(event)

    def test_extraction_is_deterministic(self):
        extractor = ContentExtractor(trigger_phrase="@bot")
        event = _make_event(issue_body="Line\r\n\r\n\r\n> q\nMore <!-- c -->")
        comments = [_comment(1, "note")]
        assert extractor.extract(event, comments) == extractor.extract(event, comments)
