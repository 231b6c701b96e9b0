"""Unit tests for the ResponsePoster.

GitHub is replaced with an in-memory fake that keeps the issue's comments
so that duplicate posting is observable.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from issue_responder.delivery import DeliveryOutcome, InMemoryDeliveryStore
from issue_responder.errors import (
    AuthFailureError,
    InvalidResponseError,
    NetworkError,
    RequestTimeoutError,
)
from issue_responder.github import (
    IssueComment,
    PostStatus,
    ResponsePoster,
    parse_label,
    render_comment,
)
from issue_responder.llm.models import Completion
from issue_responder.markers import delivery_marker, find_marker
from issue_responder.retry import RetryPolicy
from issue_responder.webhook.models import EventKind, IssueEvent


def run_async(coro):
    return asyncio.run(coro)


async def _no_sleep(delay: float) -> None:
    return None


class FakeGitHub:
    """Keeps comments and labels for a single issue.

    ``create_failures`` are raised by create_comment in order. When
    ``lose_responses`` is set, the comment is stored before the failure is
    raised, as happens when a response is lost in transit.
    """

    def __init__(self, create_failures=(), label_failures=(), lose_responses=False):
        self.comments: List[IssueComment] = []
        self.labels: List[str] = []
        self.create_failures = list(create_failures)
        self.label_failures = list(label_failures)
        self.lose_responses = lose_responses
        self.create_calls = 0
        self.list_calls = 0

    async def create_comment(self, owner, repo, issue_number, body) -> IssueComment:
        self.create_calls += 1
        comment: Optional[IssueComment] = None
        if not self.create_failures or self.lose_responses:
            comment = IssueComment(
                id=len(self.comments) + 1,
                author="issue-responder[bot]",
                body=body,
                html_url=f"https://github.com/{owner}/{repo}/issues/{issue_number}"
                f"#issuecomment-{len(self.comments) + 1}",
            )
            self.comments.append(comment)
        if self.create_failures:
            raise self.create_failures.pop(0)
        return comment

    async def list_comments(self, owner, repo, issue_number) -> List[IssueComment]:
        self.list_calls += 1
        return list(self.comments)

    async def add_labels(self, owner, repo, issue_number, labels) -> List[str]:
        if self.label_failures:
            raise self.label_failures.pop(0)
        self.labels.extend(labels)
        return list(self.labels)


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class TakeoverGitHub(FakeGitHub):
    """Runs another worker's delivery while the first comment is in flight.

    The clock is moved past the claim TTL first, so the other worker takes
    over the pending claim.
    """

    def __init__(self, clock, claim_ttl):
        super().__init__()
        self.clock = clock
        self.claim_ttl = claim_ttl
        self.takeover = None
        self.takeover_result = None

    async def create_comment(self, owner, repo, issue_number, body) -> IssueComment:
        if self.takeover is not None:
            takeover, self.takeover = self.takeover, None
            self.clock.advance(self.claim_ttl + 1)
            self.takeover_result = await takeover()
        return await super().create_comment(owner, repo, issue_number, body)


def _make_event(event_id: str = "evt-42", **overrides) -> IssueEvent:
    values = dict(
        event_id=event_id,
        repository="acme/widgets",
        issue_number=7,
        kind=EventKind.OPENED,
        author="reporter",
        body="How do I configure X?",
        title="Configuring X",
        issue_author="reporter",
        issue_body="How do I configure X?",
        html_url="https://github.com/acme/widgets/issues/7",
    )
    values.update(overrides)
    return IssueEvent(**values)


def _make_poster(github, store=None, allowed_labels=(), max_attempts=3):
    return ResponsePoster(
        github_client=github,
        delivery_store=store or InMemoryDeliveryStore(),
        retry_policy=RetryPolicy(max_attempts=max_attempts, sleep=_no_sleep),
        allowed_labels=allowed_labels,
    )


ANSWER = Completion(text="Try setting X_CONFIG=1")


class TestParseLabel:
    def test_regular_reply_has_no_label(self):
        assert parse_label("Try setting X_CONFIG=1", allowed_labels=["bug"]) is None
        assert parse_label("Some text\nLABEL: bug", allowed_labels=["bug"]) is None

    def test_no_label_when_labelling_is_disabled(self):
        assert parse_label("LABEL: needs-info\nbecause reasons") is None
        assert parse_label("LABEL: bug", allowed_labels=()) is None

    def test_allowed_label_uses_configured_spelling(self):
        assert parse_label("label:  Bug ", allowed_labels=["bug", "question"]) == "bug"

    def test_disallowed_label_is_invalid(self):
        with pytest.raises(InvalidResponseError):
            parse_label("LABEL: wontfix", allowed_labels=["bug"])


class TestRenderComment:
    def test_layout(self):
        body = render_comment(_make_event(), "  Try setting X_CONFIG=1\n")

        assert body == "\n\n".join(
            [
                "Configuring X\nhttps://github.com/acme/widgets/issues/7",
                "Try setting X_CONFIG=1",
                "This result is generated by issue-responder. Triggered by @reporter",
                delivery_marker("evt-42"),
            ]
        )

    def test_marker_identifies_event(self):
        assert find_marker(render_comment(_make_event("abc"), "text")) == "abc"


class TestResponsePoster:
    def test_posts_comment_and_records_delivery(self):
        github = FakeGitHub()
        store = InMemoryDeliveryStore()

        async def scenario():
            result = await _make_poster(github, store).post(_make_event(), ANSWER)
            return result, await store.get("evt-42")

        result, record = run_async(scenario())

        assert result.status == PostStatus.POSTED
        assert result.comment_id == 1
        assert result.recovered is False
        assert record.outcome == DeliveryOutcome.POSTED
        assert record.comment_url == result.comment_url
        assert len(github.comments) == 1
        assert "Try setting X_CONFIG=1" in github.comments[0].body
        assert github.list_calls == 0

    def test_second_post_for_same_event_is_skipped(self):
        github = FakeGitHub()

        async def scenario():
            poster = _make_poster(github)
            first = await poster.post(_make_event(), ANSWER)
            second = await poster.post(_make_event(), ANSWER)
            return first, second

        first, second = run_async(scenario())

        assert second.status == PostStatus.SKIPPED
        assert second.comment_url == first.comment_url
        assert github.create_calls == 1

    def test_concurrent_posts_create_one_comment(self):
        github = FakeGitHub()

        async def scenario():
            poster = _make_poster(github)
            return await asyncio.gather(
                *(poster.post(_make_event(), ANSWER) for _ in range(5))
            )

        results = run_async(scenario())

        assert [r.status for r in results].count(PostStatus.POSTED) == 1
        assert len(github.comments) == 1

    def test_lost_response_is_recovered_instead_of_reposted(self):
        github = FakeGitHub(
            create_failures=[RequestTimeoutError("read timeout")], lose_responses=True
        )

        result = run_async(_make_poster(github).post(_make_event(), ANSWER))

        assert result.status == PostStatus.POSTED
        assert result.recovered is True
        assert github.create_calls == 1
        assert len(github.comments) == 1

    def test_retry_after_network_error_without_comment_posts_once(self):
        github = FakeGitHub(create_failures=[NetworkError("502", status_code=502)])

        result = run_async(_make_poster(github).post(_make_event(), ANSWER))

        assert result.recovered is False
        assert github.create_calls == 2
        assert github.list_calls == 1
        assert len(github.comments) == 1

    def test_auth_failure_is_recorded_as_permanent(self):
        github = FakeGitHub(create_failures=[AuthFailureError("bad token")])
        store = InMemoryDeliveryStore()

        async def scenario():
            with pytest.raises(AuthFailureError):
                await _make_poster(github, store).post(_make_event(), ANSWER)
            return await store.get("evt-42")

        record = run_async(scenario())

        assert github.create_calls == 1
        assert record.outcome == DeliveryOutcome.FAILED
        assert record.retryable is False

    def test_exhausted_transient_failure_can_be_redelivered(self):
        github = FakeGitHub(
            create_failures=[NetworkError("down"), NetworkError("down")]
        )
        store = InMemoryDeliveryStore()

        async def scenario():
            poster = _make_poster(github, store, max_attempts=2)
            with pytest.raises(NetworkError):
                await poster.post(_make_event(), ANSWER)
            failed = await store.get("evt-42")
            retried = await poster.post(_make_event(), ANSWER)
            return failed, retried

        failed, retried = run_async(scenario())

        assert failed.outcome == DeliveryOutcome.FAILED
        assert failed.retryable is True
        assert retried.status == PostStatus.POSTED
        assert len(github.comments) == 1

    def test_reclaimed_delivery_finds_earlier_comment(self):
        github = FakeGitHub()
        github.comments.append(
            IssueComment(
                id=77,
                author="issue-responder[bot]",
                body=render_comment(_make_event(), "earlier answer"),
                html_url="https://github.com/acme/widgets/issues/7#issuecomment-77",
            )
        )
        store = InMemoryDeliveryStore()

        async def scenario():
            claim = await store.claim("evt-42")
            await store.mark_failed("evt-42", claim.token, "timeout", retryable=True)
            return await _make_poster(github, store).post(_make_event(), ANSWER)

        result = run_async(scenario())

        assert result.recovered is True
        assert result.comment_id == 77
        assert github.create_calls == 0

    def test_stale_worker_does_not_overwrite_taken_over_delivery(self):
        clock = FakeClock()
        store = InMemoryDeliveryStore(claim_ttl=60, clock=clock)
        github = TakeoverGitHub(clock, claim_ttl=60)
        github.takeover = lambda: _make_poster(github, store).post(_make_event(), ANSWER)

        async def scenario():
            result = await _make_poster(github, store).post(_make_event(), ANSWER)
            return result, await store.get("evt-42")

        stale, record = run_async(scenario())
        current = github.takeover_result

        assert stale.status == PostStatus.POSTED
        assert current.status == PostStatus.POSTED
        assert record.outcome == DeliveryOutcome.POSTED
        assert record.comment_url == current.comment_url
        assert record.comment_url != stale.comment_url

    def test_label_completion_applies_label(self):
        github = FakeGitHub()
        store = InMemoryDeliveryStore()

        async def scenario():
            poster = _make_poster(github, store, allowed_labels=["bug", "question"])
            result = await poster.post(_make_event(), Completion(text="LABEL: Question"))
            return result, await store.get("evt-42")

        result, record = run_async(scenario())

        assert result.label == "question"
        assert github.labels == ["question"]
        assert github.comments == []
        assert record.label == "question"

    def test_label_line_is_posted_as_comment_without_allowed_labels(self):
        github = FakeGitHub()

        result = run_async(
            _make_poster(github).post(
                _make_event(), Completion(text="LABEL: wontfix\nsome reasoning")
            )
        )

        assert result.status == PostStatus.POSTED
        assert result.label is None
        assert github.labels == []
        assert len(github.comments) == 1
        assert "LABEL: wontfix\nsome reasoning" in github.comments[0].body

    def test_disallowed_label_does_not_claim(self):
        github = FakeGitHub()
        store = InMemoryDeliveryStore()

        async def scenario():
            poster = _make_poster(github, store, allowed_labels=["bug"])
            with pytest.raises(InvalidResponseError):
                await poster.post(_make_event(), Completion(text="LABEL: wontfix"))
            return await store.get("evt-42")

        assert run_async(scenario()) is None
        assert github.labels == []
