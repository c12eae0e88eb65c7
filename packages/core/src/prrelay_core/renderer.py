"""Notification classification and message formatting.

Everything here is a pure function of a snapshot (plus whether a thread
already exists for it), which is what makes polling idempotent: an
unchanged snapshot always resolves to the same notification kind, and the
engine never has to remember what it sent last time.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from prrelay_core.models import PullRequestSnapshot, PullRequestState, ReviewStatus

_STATUS_GLYPH = {
    ReviewStatus.APPROVED: "✅",
    ReviewStatus.CHANGES_REQUESTED: "🔴",
    ReviewStatus.PENDING: "⏳",
}


class NotificationKind(str, Enum):
    NEW_PULL_REQUEST = "new_pull_request"
    ALL_APPROVED = "all_approved"
    REMINDER = "reminder"
    NO_CHANGE = "no_change"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    text: str


def classify(pr: PullRequestSnapshot, has_thread: bool) -> NotificationKind:
    if not has_thread:
        return NotificationKind.NEW_PULL_REQUEST
    # All-approved wins over a reminder; it implies zero pending reviewers anyway.
    if pr.state == PullRequestState.OPEN and pr.all_approved():
        return NotificationKind.ALL_APPROVED
    if pr.pending_reviewers():
        return NotificationKind.REMINDER
    return NotificationKind.NO_CHANGE


def render(pr: PullRequestSnapshot, has_thread: bool, mentions: dict[str, str] | None = None) -> Notification | None:
    """Classify a snapshot and format its message. Returns None for NO_CHANGE."""
    kind = classify(pr, has_thread)
    if kind == NotificationKind.NEW_PULL_REQUEST:
        return Notification(kind, format_new_pull_request(pr))
    if kind == NotificationKind.ALL_APPROVED:
        return Notification(kind, format_all_approved(pr, mentions))
    if kind == NotificationKind.REMINDER:
        return Notification(kind, format_reminder(pr, mentions))
    return None


def resolve_mention(display_name: str, mentions: dict[str, str] | None = None) -> str:
    """Return "Name - @mention" when the name is mapped, the bare name otherwise."""
    mention = (mentions or {}).get(display_name)
    return f"{display_name} - {mention}" if mention else display_name


def _human_state(state: PullRequestState) -> str:
    return "Open" if state == PullRequestState.OPEN else state.value


def format_new_pull_request(pr: PullRequestSnapshot) -> str:
    reviewer_lines = [f"{_STATUS_GLYPH[pr.review_status(r)]} {r.display_name}" for r in pr.reviewers]

    lines = [
        "🟢 *New pull request*",
        "",
        f"*Title:* {pr.title}",
        f"*Author:* {pr.author.display_name}",
        f"*State:* {_human_state(pr.state)}",
        f"*Repository:* {pr.source_repository}",
        f"*Branches:* {pr.source_branch} → {pr.destination_branch}",
        "",
        "*Reviewers:*",
        *(reviewer_lines or ["No reviewers assigned"]),
        "",
    ]
    if pr.description:
        lines += ["*Description:*", pr.description, ""]
    lines.append(f"🔗 {pr.link}")
    return "\n".join(lines)


def format_all_approved(pr: PullRequestSnapshot, mentions: dict[str, str] | None = None) -> str:
    return "\n".join(
        [
            "🎉 *All reviewers approved the PR!*",
            f"{resolve_mention(pr.author.display_name, mentions)}, your PR is ready to merge:",
            f"PR: {pr.title}",
            "",
            "*Approved by:*",
            *(f"✅ {r.display_name}" for r in pr.reviewers),
            "",
            f"🔗 {pr.link}",
        ]
    )


def format_reminder(pr: PullRequestSnapshot, mentions: dict[str, str] | None = None) -> str:
    return "\n".join(
        [
            "🔄 Review reminder",
            f"PR: {pr.title}",
            "",
            "Waiting for review from:",
            *(f"• {resolve_mention(r.display_name, mentions)}" for r in pr.pending_reviewers()),
            "",
            f"🔗 {pr.link}",
        ]
    )


def format_startup_message(poll_interval: int) -> str:
    minutes = max(1, round(poll_interval / 60))
    return "\n".join(
        [
            "🚀 *PR relay started*",
            "",
            "*Tracking:*",
            "• New pull requests",
            "• Updates to existing pull requests",
            "",
            f"_Checking every {minutes} min_",
        ]
    )


def format_error_message(error: BaseException) -> str:
    return "\n".join(
        [
            "❌ *Error*",
            "",
            f"*Type:* {type(error).__name__}",
            f"*Message:* {error}",
            "",
            "_Check the application logs for details._",
        ]
    )
