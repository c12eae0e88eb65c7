"""GitHub reader backed by PyGithub.

GitHub has no Bitbucket-style participants list, so one is derived:
- reviewers = requested reviewers, then anyone who has submitted a review
  (GitHub removes a user from requested_reviewers once they review);
- each reviewer's participation record is their latest non-comment review:
  APPROVED → approved, CHANGES_REQUESTED → changes_requested, DISMISSED →
  pending. Users who were requested but never reviewed have no record.

Closed-unmerged PRs map to DECLINED. ``workspace`` is the owner (user or
organisation) and ``repository`` the repo name.
"""

from __future__ import annotations

import logging

import requests
from github import Github, GithubException, UnknownObjectException

from prrelay_core.errors import StartupError, UpstreamReadError
from prrelay_core.models import Participant, ParticipantState, PullRequestSnapshot, PullRequestState, User
from prrelay_core.readers.base import CLOSED, ReviewReader

logger = logging.getLogger(__name__)

_REVIEW_STATE = {
    "APPROVED": ParticipantState.APPROVED,
    "CHANGES_REQUESTED": ParticipantState.CHANGES_REQUESTED,
    "DISMISSED": ParticipantState.PENDING,
}


def _user(named_user) -> User:
    return User(display_name=named_user.login, account_id=str(named_user.id))


def _pr_state(pr) -> PullRequestState:
    if pr.merged:
        return PullRequestState.MERGED
    if pr.state == "closed":
        return PullRequestState.DECLINED
    return PullRequestState.OPEN


def snapshot_from_pull(pr, repo_full_name: str) -> PullRequestSnapshot:
    """Build a snapshot from a PyGithub PullRequest object."""
    reviewers: dict[str, User] = {}
    for requested in pr.requested_reviewers:
        user = _user(requested)
        reviewers.setdefault(user.account_id, user)

    latest: dict[str, ParticipantState] = {}
    for review in pr.get_reviews():
        if review.user is None:
            continue
        user = _user(review.user)
        if user.account_id == str(pr.user.id):
            continue
        reviewers.setdefault(user.account_id, user)
        state = _REVIEW_STATE.get(review.state)
        # A plain comment does not change an earlier verdict.
        if state is not None:
            latest[user.account_id] = state

    participants = tuple(
        Participant(
            user=reviewers[account_id],
            role="REVIEWER",
            approved=state == ParticipantState.APPROVED,
            state=state,
        )
        for account_id, state in latest.items()
    )

    head_repo = pr.head.repo
    return PullRequestSnapshot(
        id=pr.number,
        title=pr.title or "",
        description=pr.body or "",
        state=_pr_state(pr),
        author=_user(pr.user),
        reviewers=tuple(reviewers.values()),
        participants=participants,
        source_branch=pr.head.ref,
        source_repository=head_repo.full_name if head_repo is not None else repo_full_name,
        destination_branch=pr.base.ref,
        link=pr.html_url,
        updated_on=pr.updated_at.isoformat() if pr.updated_at else "",
    )


class GitHubReader(ReviewReader):
    def __init__(self, token: str, timeout: float = 10, client: Github | None = None):
        self._gh = client or Github(token, timeout=int(timeout))

    def list_open_pull_requests(self, workspace: str, repository: str) -> list[PullRequestSnapshot]:
        full_name = f"{workspace}/{repository}"
        try:
            repo = self._gh.get_repo(full_name)
            return [snapshot_from_pull(pr, full_name) for pr in repo.get_pulls(state="open")]
        except (GithubException, requests.RequestException) as e:
            logger.error("Failed to fetch pull requests for %s: %s", full_name, e)
            return []

    def get_status(self, workspace: str, repository: str, pr_id: int) -> str:
        full_name = f"{workspace}/{repository}"
        try:
            pr = self._gh.get_repo(full_name).get_pull(int(pr_id))
        except UnknownObjectException:
            return CLOSED
        except (GithubException, requests.RequestException) as e:
            raise UpstreamReadError(f"Status check for PR #{pr_id} in {full_name} failed: {e}") from e
        return _pr_state(pr).value

    def validate_access(self, workspace: str) -> None:
        try:
            self._gh.get_user(workspace).login
        except (GithubException, requests.RequestException) as e:
            raise StartupError(f"Invalid GitHub token or owner {workspace}: {e}") from e

    def close(self) -> None:
        self._gh.close()
