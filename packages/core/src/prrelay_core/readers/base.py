"""Review-system reader interface.

Readers hide the provider API behind three calls and return provider-neutral
PullRequestSnapshot values. The engine depends on ReviewReader only, so a
new review system is added by implementing this class; nothing else changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prrelay_core.models import PullRequestSnapshot

# Status reported for a pull request the review system no longer knows about.
CLOSED = "CLOSED"
OPEN = "OPEN"


class ReviewReader(ABC):
    @abstractmethod
    def list_open_pull_requests(self, workspace: str, repository: str) -> list[PullRequestSnapshot]:
        """Return snapshots of all open PRs in a repository.

        Returns an empty list if the review system cannot be read; never raises.
        """

    @abstractmethod
    def get_status(self, workspace: str, repository: str, pr_id: int) -> str:
        """Return the PR state string (e.g. "OPEN", "MERGED").

        A PR that no longer exists is reported as CLOSED; any other failure
        raises UpstreamReadError.
        """

    @abstractmethod
    def validate_access(self, workspace: str) -> None:
        """Raise StartupError unless the credentials can read ``workspace``."""

    def close(self) -> None:
        """Release any resources held by the reader. Default is a no-op."""
