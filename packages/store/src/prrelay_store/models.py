"""Thread store data models.

Decoupled from prrelay_core so the store layer can be used independently
and prrelay_core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ThreadRecord:
    """Links a pull request to the chat thread opened for it.

    Created after the root notification for a PR is posted and its thread is
    created; deleted once the PR is observed to have left the OPEN state.
    """

    pr_id: int
    thread_id: str
    repository: str  # full name, e.g. "acme/backend"
    updated_at: str  # ISO-8601 UTC timestamp
