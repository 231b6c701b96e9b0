"""Tests for webhook delivery parsing.

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

from typing import Optional

import pytest
from hypothesis import given, settings, strategies as st

from issue_responder.markers import delivery_marker
from issue_responder.webhook import EventKind, WebhookHandler


# =============================================================================
# Hypothesis Strategies
# =============================================================================


@st.composite
def github_login(draw: st.DrawFn) -> str:
    """Generate a GitHub username."""
    return draw(st.from_regex(r"[A-Za-z0-9][A-Za-z0-9-]{0,38}", fullmatch=True))


@st.composite
def repo_name(draw: st.DrawFn) -> str:
    return draw(
        st.text(
            alphabet="abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_.",
            min_size=1,
            max_size=100,
        ).filter(lambda x: not x.startswith("."))
    )


@st.composite
def label_name(draw: st.DrawFn) -> str:
    return draw(
        st.text(
            alphabet="abcdefghijklmnopqrstuvwxyz0123456789-_: ",
            min_size=1,
            max_size=50,
        ).filter(lambda x: x.strip())
    )


@st.composite
def issues_payload(draw: st.DrawFn) -> dict:
    owner = draw(github_login())
    name = draw(repo_name())
    return {
        "action": draw(st.sampled_from(["opened", "edited"])),
        "issue": {
            "number": draw(st.integers(min_value=1, max_value=1_000_000)),
            "title": draw(st.text(min_size=1, max_size=200).filter(lambda x: x.strip())),
            "body": draw(st.one_of(st.none(), st.text(max_size=2000))),
            "html_url": f"https://github.com/{owner}/{name}/issues/1",
            "labels": [{"name": n} for n in draw(st.lists(label_name(), max_size=10))],
            "user": {"login": draw(github_login())},
        },
        "repository": {"full_name": f"{owner}/{name}"},
        "sender": {"login": draw(github_login())},
    }


def _comment_payload(
    body: str = "@flows_summarize please",
    user: Optional[dict] = None,
    action: str = "created",
    pull_request: bool = False,
) -> dict:
    issue = {
        "number": 7,
        "title": "Crash on startup",
        "body": "The app crashes.",
        "html_url": "https://github.com/acme/widgets/issues/7",
        "labels": [{"name": "bug"}],
        "user": {"login": "reporter"},
    }
    if pull_request:
        issue["pull_request"] = {"url": "https://api.github.com/repos/acme/widgets/pulls/7"}
    return {
        "action": action,
        "issue": issue,
        "comment": {
            "id": 555,
            "body": body,
            "user": user if user is not None else {"login": "maintainer", "type": "User"},
        },
        "repository": {"full_name": "acme/widgets"},
        "sender": {"login": "maintainer"},
    }


# =============================================================================
# Property Tests
# =============================================================================


class TestIssueDeliveryProperties:
    @settings(max_examples=100)
    @given(payload=issues_payload(), delivery_id=st.uuids())
    def test_valid_issue_deliveries_parse(self, payload, delivery_id):
        event = WebhookHandler().parse_event("issues", payload, delivery_id=str(delivery_id))

        assert event is not None
        issue = payload["issue"]
        assert event.event_id == str(delivery_id)
        assert event.kind.value == payload["action"]
        assert event.issue_number == issue["number"]
        assert event.repository == payload["repository"]["full_name"]
        assert event.title == issue["title"].strip()
        assert event.body == (issue["body"] or "")
        assert event.issue_body == event.body
        assert list(event.labels) == [label["name"].strip() for label in issue["labels"]]
        assert event.issue_author == issue["user"]["login"]
        assert event.author == payload["sender"]["login"]

    @settings(max_examples=100)
    @given(payload=issues_payload())
    def test_derived_event_id_is_deterministic(self, payload):
        handler = WebhookHandler()
        first = handler.parse_event("issues", payload)
        second = handler.parse_event("issues", payload)
        assert first.event_id == second.event_id

    @settings(max_examples=100)
    @given(payload=issues_payload())
    def test_issue_id_format(self, payload):
        event = WebhookHandler().parse_event("issues", payload)
        assert event.issue_id == (
            f"{payload['repository']['full_name']}#{payload['issue']['number']}"
        )


# =============================================================================
# Unit Tests
# =============================================================================


class TestIssueDeliveries:
    def test_repository_from_owner_and_name(self):
        payload = {
            "action": "opened",
            "issue": {"number": 3, "title": "T", "body": "B", "user": {"login": "u"}},
            "repository": {"name": "widgets", "owner": {"login": "acme"}},
        }

        event = WebhookHandler().parse_event("issues", payload, delivery_id="d-1")

        assert event.repository == "acme/widgets"
        assert event.owner == "acme"
        assert event.repo == "widgets"
        assert event.author == "u"

    @pytest.mark.parametrize(
        "action",
        ["labeled", "closed", "reopened", "deleted", "assigned", "transferred", None],
    )
    def test_unsupported_actions_are_ignored(self, action):
        payload = {
            "action": action,
            "issue": {"number": 3, "title": "T", "user": {"login": "u"}},
            "repository": {"full_name": "acme/widgets"},
        }
        assert WebhookHandler().parse_event("issues", payload) is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"action": "opened"},
            {"action": "opened", "issue": "not a dict", "repository": {"full_name": "a/b"}},
            {
                "action": "opened",
                "issue": {"number": 0, "title": "T", "user": {"login": "u"}},
                "repository": {"full_name": "a/b"},
            },
            {
                "action": "opened",
                "issue": {"number": True, "title": "T", "user": {"login": "u"}},
                "repository": {"full_name": "a/b"},
            },
            {
                "action": "opened",
                "issue": {"number": 1, "title": "T", "user": {"login": "u"}},
            },
            {
                "action": "opened",
                "issue": {"number": 1, "title": "T", "user": None},
                "repository": {"full_name": "a/b"},
            },
        ],
    )
    def test_malformed_payloads_are_ignored(self, payload):
        assert WebhookHandler().parse_event("issues", payload) is None

    def test_non_dict_payload_is_ignored(self):
        assert WebhookHandler().parse_event("issues", ["not", "a", "dict"]) is None

    def test_unsupported_event_names_are_ignored(self):
        assert WebhookHandler().parse_event("push", {"ref": "main"}) is None


class TestCommentDeliveries:
    def test_triggering_comment_is_parsed(self):
        handler = WebhookHandler(trigger_phrase="@flows_summarize")

        event = handler.parse_event(
            "issue_comment", _comment_payload(), delivery_id="d-2"
        )

        assert event.kind == EventKind.COMMENTED
        assert event.body == "@flows_summarize please"
        assert event.author == "maintainer"
        assert event.issue_author == "reporter"
        assert event.issue_body == "The app crashes."
        assert event.comment_id == 555
        assert event.labels == ("bug",)

    def test_comment_without_trigger_is_ignored(self):
        handler = WebhookHandler(trigger_phrase="@flows_summarize")
        assert handler.parse_event("issue_comment", _comment_payload(body="thanks")) is None

    def test_every_comment_answered_without_trigger_phrase(self):
        event = WebhookHandler().parse_event("issue_comment", _comment_payload(body="thanks"))
        assert event is not None

    def test_derived_event_id_uses_comment_id(self):
        event = WebhookHandler().parse_event("issue_comment", _comment_payload())
        assert event.event_id == "issue_comment:acme/widgets#7:555"

    @pytest.mark.parametrize(
        "user",
        [
            {"login": "dependabot[bot]", "type": "Bot"},
            {"login": "issue-responder[bot]"},
            {"login": "ci-helper", "type": "Bot"},
        ],
    )
    def test_bot_comments_are_ignored(self, user):
        payload = _comment_payload(user=user)
        assert WebhookHandler().parse_event("issue_comment", payload) is None

    def test_own_comments_are_ignored(self):
        payload = _comment_payload(body="@flows_summarize answer\n" + delivery_marker("x"))
        assert WebhookHandler().parse_event("issue_comment", payload) is None

    def test_pull_request_comments_are_ignored(self):
        payload = _comment_payload(pull_request=True)
        assert WebhookHandler().parse_event("issue_comment", payload) is None

    @pytest.mark.parametrize("action", ["edited", "deleted"])
    def test_only_created_comments_are_handled(self, action):
        payload = _comment_payload(action=action)
        assert WebhookHandler().parse_event("issue_comment", payload) is None
