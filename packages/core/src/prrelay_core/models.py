"""Pull request snapshot models.

A snapshot is a point-in-time read of one pull request (its reviewers and
their participation records) as returned by a review-system reader. The
renderer and the engine work exclusively on these immutable values, so the
provider-specific JSON never leaks past the readers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PullRequestState(str, Enum):
    OPEN = "OPEN"
    MERGED = "MERGED"
    DECLINED = "DECLINED"
    SUPERSEDED = "SUPERSEDED"


class ParticipantState(str, Enum):
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    PENDING = "pending"


class ReviewStatus(str, Enum):
    """Derived per-reviewer status used for rendering."""

    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    PENDING = "pending"


@dataclass(frozen=True)
class User:
    display_name: str
    account_id: str


@dataclass(frozen=True)
class Participant:
    """A user's participation record on a pull request."""

    user: User
    role: str = "PARTICIPANT"  # "PARTICIPANT" | "REVIEWER"
    approved: bool = False
    state: ParticipantState | None = None


@dataclass(frozen=True)
class PullRequestSnapshot:
    id: int
    title: str
    author: User
    state: PullRequestState = PullRequestState.OPEN
    description: str = ""
    reviewers: tuple[User, ...] = ()
    participants: tuple[Participant, ...] = ()
    source_branch: str = ""
    source_repository: str = ""
    destination_branch: str = ""
    link: str = ""
    updated_on: str = ""

    def participant_for(self, reviewer: User) -> Participant | None:
        """Return the participation record for a reviewer, or None when there is none."""
        for participant in self.participants:
            if participant.user.account_id == reviewer.account_id:
                return participant
        return None

    def review_status(self, reviewer: User) -> ReviewStatus:
        participant = self.participant_for(reviewer)
        if participant is None:
            return ReviewStatus.PENDING
        if participant.approved:
            return ReviewStatus.APPROVED
        if participant.state == ParticipantState.CHANGES_REQUESTED:
            return ReviewStatus.CHANGES_REQUESTED
        return ReviewStatus.PENDING

    def pending_reviewers(self) -> list[User]:
        """Reviewers still expected to act, in snapshot order."""
        return [r for r in self.reviewers if self.review_status(r) == ReviewStatus.PENDING]

    def all_approved(self) -> bool:
        """True when there is at least one reviewer and every reviewer approved."""
        if not self.reviewers:
            return False
        for reviewer in self.reviewers:
            participant = self.participant_for(reviewer)
            if participant is None or not participant.approved:
                return False
        return True


# ---------------------------------------------------------------------------
# Bitbucket payload parsing
# ---------------------------------------------------------------------------


def _user_from_bitbucket(d: dict | None) -> User:
    d = d or {}
    return User(display_name=d.get("display_name", "") or "", account_id=d.get("account_id", "") or "")


def _participant_state(raw: str | None) -> ParticipantState | None:
    try:
        return ParticipantState(raw) if raw else None
    except ValueError:
        return None


def _dedupe_users(users: list[User]) -> tuple[User, ...]:
    seen: set[str] = set()
    result = []
    for user in users:
        key = user.account_id or user.display_name
        if key in seen:
            continue
        seen.add(key)
        result.append(user)
    return tuple(result)


def from_bitbucket(payload: dict) -> PullRequestSnapshot:
    """Build a snapshot from a Bitbucket Cloud 2.0 pull request object.

    Only the fields requested by BitbucketReader are read; anything missing
    falls back to an empty value rather than raising.
    """
    source = payload.get("source") or {}
    destination = payload.get("destination") or {}
    participants = tuple(
        Participant(
            user=_user_from_bitbucket(p.get("user")),
            role=p.get("role") or "PARTICIPANT",
            approved=bool(p.get("approved")),
            state=_participant_state(p.get("state")),
        )
        for p in payload.get("participants") or []
    )
    return PullRequestSnapshot(
        id=int(payload["id"]),
        title=payload.get("title", "") or "",
        description=payload.get("description", "") or "",
        state=PullRequestState(payload.get("state") or PullRequestState.OPEN.value),
        author=_user_from_bitbucket(payload.get("author")),
        reviewers=_dedupe_users([_user_from_bitbucket(r) for r in payload.get("reviewers") or []]),
        participants=participants,
        source_branch=((source.get("branch") or {}).get("name", "")),
        source_repository=((source.get("repository") or {}).get("full_name", "")),
        destination_branch=((destination.get("branch") or {}).get("name", "")),
        link=(((payload.get("links") or {}).get("html") or {}).get("href", "")),
        updated_on=payload.get("updated_on", "") or "",
    )
