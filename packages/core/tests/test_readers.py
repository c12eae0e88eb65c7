"""Tests for the review-system readers.

HTTP and PyGithub are mocked at the session/client boundary; no network.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests
from github import GithubException, UnknownObjectException

from prrelay_core.errors import StartupError, UpstreamReadError
from prrelay_core.models import ParticipantState, PullRequestState
from prrelay_core.readers.base import CLOSED
from prrelay_core.readers.bitbucket import BitbucketReader
from prrelay_core.readers.github import GitHubReader, snapshot_from_pull

API = "https://api.bitbucket.org/2.0"


def _response(status=200, json_data=None):
    response = MagicMock(spec=requests.Response)
    response.status_code = status
    response.ok = status < 400
    response.json.return_value = json_data if json_data is not None else {}
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    return response


def _pr_payload(pr_id):
    return {
        "id": pr_id,
        "title": f"PR {pr_id}",
        "state": "OPEN",
        "author": {"display_name": "Dave", "account_id": "d"},
        "reviewers": [],
        "participants": [],
    }


def _make_bitbucket(session):
    return BitbucketReader(api_url=API, username="bot", app_password="secret", timeout=3, session=session)


# ---------------------------------------------------------------------------
# BitbucketReader
# ---------------------------------------------------------------------------


class TestBitbucketReader:
    def test_uses_basic_auth(self):
        session = MagicMock()
        _make_bitbucket(session)
        assert session.auth == ("bot", "secret")

    def test_lists_open_pull_requests(self):
        session = MagicMock()
        session.get.return_value = _response(json_data={"values": [_pr_payload(1), _pr_payload(2)]})

        prs = _make_bitbucket(session).list_open_pull_requests("acme", "backend")

        assert [pr.id for pr in prs] == [1, 2]
        url = session.get.call_args.args[0]
        params = session.get.call_args.kwargs["params"]
        assert url == f"{API}/repositories/acme/backend/pullrequests"
        assert params["state"] == "OPEN"
        assert params["sort"] == "-updated_on"
        assert params["pagelen"] == 50
        assert "values.participants.approved" in params["fields"]
        assert session.get.call_args.kwargs["timeout"] == 3

    def test_follows_next_page(self):
        session = MagicMock()
        session.get.side_effect = [
            _response(json_data={"values": [_pr_payload(1)], "next": f"{API}/page2"}),
            _response(json_data={"values": [_pr_payload(2)]}),
        ]

        prs = _make_bitbucket(session).list_open_pull_requests("acme", "backend")

        assert [pr.id for pr in prs] == [1, 2]
        assert session.get.call_args_list[1].args[0] == f"{API}/page2"
        assert session.get.call_args_list[1].kwargs["params"] is None

    def test_stops_after_max_pages(self):
        session = MagicMock()
        session.get.return_value = _response(json_data={"values": [_pr_payload(1)], "next": f"{API}/again"})
        reader = BitbucketReader(api_url=API, username="u", app_password="p", max_pages=2, session=session)

        assert len(reader.list_open_pull_requests("acme", "backend")) == 2
        assert session.get.call_count == 2

    def test_list_failure_returns_empty(self):
        session = MagicMock()
        session.get.return_value = _response(status=500)
        assert _make_bitbucket(session).list_open_pull_requests("acme", "backend") == []

    def test_connection_error_returns_empty(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("down")
        assert _make_bitbucket(session).list_open_pull_requests("acme", "backend") == []

    def test_malformed_pull_request_skipped(self):
        session = MagicMock()
        session.get.return_value = _response(json_data={"values": [{"title": "no id"}, _pr_payload(2)]})
        prs = _make_bitbucket(session).list_open_pull_requests("acme", "backend")
        assert [pr.id for pr in prs] == [2]

    def test_get_status(self):
        session = MagicMock()
        session.get.return_value = _response(json_data={"state": "MERGED"})

        assert _make_bitbucket(session).get_status("acme", "backend", 5) == "MERGED"
        assert session.get.call_args.args[0] == f"{API}/repositories/acme/backend/pullrequests/5"
        assert session.get.call_args.kwargs["params"] == {"fields": "state"}

    def test_get_status_not_found_is_closed(self):
        session = MagicMock()
        session.get.return_value = _response(status=404)
        assert _make_bitbucket(session).get_status("acme", "backend", 5) == CLOSED

    def test_get_status_other_error_raises(self):
        session = MagicMock()
        session.get.return_value = _response(status=503)
        with pytest.raises(UpstreamReadError):
            _make_bitbucket(session).get_status("acme", "backend", 5)

    def test_get_status_timeout_raises(self):
        session = MagicMock()
        session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(UpstreamReadError):
            _make_bitbucket(session).get_status("acme", "backend", 5)

    def test_validate_access(self):
        session = MagicMock()
        session.get.return_value = _response()
        _make_bitbucket(session).validate_access("acme")
        assert session.get.call_args.args[0] == f"{API}/workspaces/acme"

    def test_validate_access_failure_raises_startup_error(self):
        session = MagicMock()
        session.get.return_value = _response(status=401)
        with pytest.raises(StartupError, match="acme"):
            _make_bitbucket(session).validate_access("acme")


# ---------------------------------------------------------------------------
# GitHubReader
# ---------------------------------------------------------------------------


def _gh_user(login, user_id):
    user = MagicMock()
    user.login = login
    user.id = user_id
    return user


def _gh_review(user, state):
    review = MagicMock()
    review.user = user
    review.state = state
    return review


def _gh_pull(number=7, requested=(), reviews=(), merged=False, state="open"):
    pr = MagicMock()
    pr.number = number
    pr.title = "Fix auth"
    pr.body = None
    pr.merged = merged
    pr.state = state
    pr.user = _gh_user("dave", 4)
    pr.requested_reviewers = list(requested)
    pr.get_reviews.return_value = list(reviews)
    pr.head.ref = "feature"
    pr.head.repo.full_name = "acme/backend"
    pr.base.ref = "main"
    pr.html_url = "https://github.com/acme/backend/pull/7"
    pr.updated_at = datetime(2024, 5, 1, tzinfo=timezone.utc)
    return pr


class TestGitHubSnapshot:
    def test_requested_reviewer_without_review_is_pending(self):
        alice = _gh_user("alice", 1)
        snapshot = snapshot_from_pull(_gh_pull(requested=[alice]), "acme/backend")

        assert [r.display_name for r in snapshot.reviewers] == ["alice"]
        assert snapshot.participants == ()
        assert snapshot.pending_reviewers()[0].display_name == "alice"

    def test_latest_verdict_wins_and_comments_ignored(self):
        bob = _gh_user("bob", 2)
        reviews = [_gh_review(bob, "CHANGES_REQUESTED"), _gh_review(bob, "APPROVED"), _gh_review(bob, "COMMENTED")]
        snapshot = snapshot_from_pull(_gh_pull(reviews=reviews), "acme/backend")

        assert [r.display_name for r in snapshot.reviewers] == ["bob"]
        assert snapshot.participants[0].approved is True
        assert snapshot.participants[0].state == ParticipantState.APPROVED
        assert snapshot.all_approved() is True

    def test_author_reviews_ignored(self):
        author = _gh_user("dave", 4)
        snapshot = snapshot_from_pull(_gh_pull(reviews=[_gh_review(author, "COMMENTED")]), "acme/backend")
        assert snapshot.reviewers == ()

    def test_fields_mapped(self):
        snapshot = snapshot_from_pull(_gh_pull(), "acme/backend")
        assert snapshot.id == 7
        assert snapshot.description == ""
        assert snapshot.author.display_name == "dave"
        assert snapshot.source_branch == "feature"
        assert snapshot.destination_branch == "main"
        assert snapshot.state == PullRequestState.OPEN

    def test_closed_unmerged_is_declined(self):
        assert snapshot_from_pull(_gh_pull(state="closed"), "acme/backend").state == PullRequestState.DECLINED


class TestGitHubReader:
    def test_list_open_pull_requests(self):
        client = MagicMock()
        client.get_repo.return_value.get_pulls.return_value = [_gh_pull(number=1), _gh_pull(number=2)]

        prs = GitHubReader(token="t", client=client).list_open_pull_requests("acme", "backend")

        client.get_repo.assert_called_once_with("acme/backend")
        client.get_repo.return_value.get_pulls.assert_called_once_with(state="open")
        assert [pr.id for pr in prs] == [1, 2]

    def test_list_failure_returns_empty(self):
        client = MagicMock()
        client.get_repo.side_effect = GithubException(500, "boom", None)
        assert GitHubReader(token="t", client=client).list_open_pull_requests("acme", "backend") == []

    def test_get_status_merged(self):
        client = MagicMock()
        client.get_repo.return_value.get_pull.return_value = _gh_pull(merged=True, state="closed")
        assert GitHubReader(token="t", client=client).get_status("acme", "backend", 7) == "MERGED"

    def test_get_status_not_found_is_closed(self):
        client = MagicMock()
        client.get_repo.return_value.get_pull.side_effect = UnknownObjectException(404, "Not Found", None)
        assert GitHubReader(token="t", client=client).get_status("acme", "backend", 7) == CLOSED

    def test_get_status_other_error_raises(self):
        client = MagicMock()
        client.get_repo.return_value.get_pull.side_effect = GithubException(502, "bad gateway", None)
        with pytest.raises(UpstreamReadError):
            GitHubReader(token="t", client=client).get_status("acme", "backend", 7)

    def test_validate_access_failure_raises_startup_error(self):
        client = MagicMock()
        client.get_user.side_effect = GithubException(401, "Bad credentials", None)
        with pytest.raises(StartupError):
            GitHubReader(token="t", client=client).validate_access("acme")
