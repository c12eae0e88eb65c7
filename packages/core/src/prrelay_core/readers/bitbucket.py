"""Bitbucket Cloud reader (REST API 2.0, app-password basic auth)."""

from __future__ import annotations

import logging

import requests

from prrelay_core.errors import StartupError, UpstreamReadError
from prrelay_core.models import PullRequestSnapshot, from_bitbucket
from prrelay_core.readers.base import CLOSED, ReviewReader

logger = logging.getLogger(__name__)

# Partial response selector, keeps payloads small on repositories with many PRs.
_PR_FIELDS = ",".join(
    [
        "next",
        "values.id",
        "values.title",
        "values.description",
        "values.state",
        "values.created_on",
        "values.updated_on",
        "values.author.display_name",
        "values.author.account_id",
        "values.reviewers.display_name",
        "values.reviewers.account_id",
        "values.participants.user.display_name",
        "values.participants.user.account_id",
        "values.participants.role",
        "values.participants.approved",
        "values.participants.state",
        "values.source.branch.name",
        "values.source.repository.full_name",
        "values.destination.branch.name",
        "values.links.html.href",
    ]
)


class BitbucketReader(ReviewReader):
    PAGE_LEN = 50

    def __init__(
        self,
        api_url: str,
        username: str,
        app_password: str,
        timeout: float = 10,
        max_pages: int = 10,
        session: requests.Session | None = None,
    ):
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._max_pages = max_pages
        self._session = session or requests.Session()
        self._session.auth = (username, app_password)
        self._session.headers.update({"Content-Type": "application/json"})

    def list_open_pull_requests(self, workspace: str, repository: str) -> list[PullRequestSnapshot]:
        try:
            return self._fetch_open(workspace, repository)
        except UpstreamReadError as e:
            logger.error("Failed to fetch pull requests for %s/%s: %s", workspace, repository, e)
            return []

    def _fetch_open(self, workspace: str, repository: str) -> list[PullRequestSnapshot]:
        url: str | None = f"{self._api_url}/repositories/{workspace}/{repository}/pullrequests"
        params: dict | None = {"fields": _PR_FIELDS, "state": "OPEN", "sort": "-updated_on", "pagelen": self.PAGE_LEN}
        snapshots: list[PullRequestSnapshot] = []

        for _ in range(self._max_pages):
            data = self._get_json(url, params)
            for payload in data.get("values") or []:
                try:
                    snapshots.append(from_bitbucket(payload))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Skipping malformed pull request in %s/%s: %s", workspace, repository, e)
            url = data.get("next")
            if not url:
                break
            # The "next" link already carries the query string.
            params = None
        else:
            logger.warning("Stopped paging %s/%s after %d pages", workspace, repository, self._max_pages)

        return snapshots

    def get_status(self, workspace: str, repository: str, pr_id: int) -> str:
        url = f"{self._api_url}/repositories/{workspace}/{repository}/pullrequests/{pr_id}"
        try:
            response = self._session.get(url, params={"fields": "state"}, timeout=self._timeout)
        except requests.RequestException as e:
            raise UpstreamReadError(f"Status check for PR #{pr_id} in {workspace}/{repository} failed: {e}") from e

        if response.status_code == 404:
            return CLOSED
        if not response.ok:
            raise UpstreamReadError(
                f"Status check for PR #{pr_id} in {workspace}/{repository} returned {response.status_code}"
            )
        try:
            return response.json()["state"]
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamReadError(f"Unexpected status response for PR #{pr_id}: {e}") from e

    def validate_access(self, workspace: str) -> None:
        try:
            response = self._session.get(f"{self._api_url}/workspaces/{workspace}", timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise StartupError(f"Invalid Bitbucket credentials or workspace {workspace}: {e}") from e

    def close(self) -> None:
        self._session.close()

    def _get_json(self, url: str, params: dict | None) -> dict:
        try:
            response = self._session.get(url, params=params, timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise UpstreamReadError(str(e)) from e
        if not isinstance(data, dict):
            raise UpstreamReadError(f"Unexpected response from {url}")
        return data
