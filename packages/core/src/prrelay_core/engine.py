"""Reconciliation engine: turns poll results into queued chat messages.

Per repository per cycle:
  1. list open PRs through the reader;
  2. for each snapshot: look up its thread, render, enqueue (root posts carry
     the PR id and repository so the queue can record the new thread);
  3. collect the ids observed as open;
  4. for every stored thread of this repository not observed as open, ask the
     reader for the PR's status and purge the thread once it is not OPEN.

A failure in one repository is logged and the cycle moves on. The engine
holds no memory of what it sent: whether a reply is due is re-derived from
each snapshot, so an unchanged PR produces the same outcome every cycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prrelay_core.errors import StartupError
from prrelay_core.readers.base import OPEN
from prrelay_core.renderer import NotificationKind, format_error_message, format_startup_message, render

if TYPE_CHECKING:
    from prrelay_core.config import WorkSchedule, WorkspaceConfig
    from prrelay_core.models import PullRequestSnapshot
    from prrelay_core.queue import DeliveryQueue
    from prrelay_core.readers.base import ReviewReader
    from prrelay_store.base import BaseThreadStore
    from prrelay_store.models import ThreadRecord

logger = logging.getLogger(__name__)


@dataclass
class RepositoryReport:
    """What one repository pass did. Logged and printed by `prrelay run --once`."""

    repository: str
    open_pull_requests: int = 0
    notifications: dict[str, int] = field(default_factory=dict)
    removed: list[int] = field(default_factory=list)
    error: str | None = None

    def count(self, kind: NotificationKind) -> None:
        self.notifications[kind.value] = self.notifications.get(kind.value, 0) + 1


class ReconciliationEngine:
    def __init__(
        self,
        reader: ReviewReader,
        store: BaseThreadStore,
        queue: DeliveryQueue,
        workspaces: list[WorkspaceConfig],
        mentions: dict[str, str] | None = None,
        schedule: WorkSchedule | None = None,
        poll_interval: int = 600,
    ):
        self._reader = reader
        self._store = store
        self._queue = queue
        self._workspaces = workspaces
        self._mentions = mentions or {}
        self._schedule = schedule
        self._poll_interval = poll_interval

    # ------------------------------------------------------------------ #
    # Scheduled entry points                                               #
    # ------------------------------------------------------------------ #

    def startup(self) -> list[RepositoryReport]:
        """Validate credentials, announce startup and run the first pass.

        The first pass is not gated by the work schedule. Any failure is
        reported to the chat and re-raised as StartupError.
        """
        logger.info("Starting PR relay for %d workspace(s)", len(self._workspaces))
        try:
            for workspace in self._workspaces:
                self._reader.validate_access(workspace.name)
            logger.info("Review system credentials validated")

            self._queue.enqueue(format_startup_message(self._poll_interval))

            reports = []
            for workspace in self._workspaces:
                for repository in workspace.repositories:
                    reports.append(self._notify_repository(workspace, repository))
            return reports
        except StartupError as e:
            logger.error("Failed to initialize PR relay: %s", e)
            self._queue.enqueue(format_error_message(e))
            raise
        except Exception as e:
            logger.exception("Failed to initialize PR relay")
            self._queue.enqueue(format_error_message(e))
            raise StartupError(f"Failed to initialize PR relay: {e}") from e

    def poll(self) -> list[RepositoryReport] | None:
        """Run a cycle if within working time; returns None when skipped."""
        if self._schedule is not None and not self._schedule.is_working_time():
            logger.debug("Outside of work hours, skipping PR check")
            return None
        return self.run_cycle()

    def run_cycle(self) -> list[RepositoryReport]:
        reports: list[RepositoryReport] = []
        try:
            stored = self._store.list_all()
            for workspace in self._workspaces:
                for repository in workspace.repositories:
                    reports.append(self.reconcile_repository(workspace, repository, stored))
        except Exception as e:
            logger.exception("Failed to check pull requests")
            self._queue.enqueue(format_error_message(e))
        return reports

    # ------------------------------------------------------------------ #
    # Per-repository work                                                  #
    # ------------------------------------------------------------------ #

    def reconcile_repository(
        self, workspace: WorkspaceConfig, repository: str, stored: list[ThreadRecord]
    ) -> RepositoryReport:
        full_name = workspace.full_name(repository)
        report = RepositoryReport(repository=full_name)
        try:
            snapshots = self._reader.list_open_pull_requests(workspace.name, repository)
            report.open_pull_requests = len(snapshots)
            open_ids = set()
            for pr in snapshots:
                open_ids.add(pr.id)
                report.count(self.notify(pr, full_name))

            for record in stored:
                if record.repository != full_name or record.pr_id in open_ids:
                    continue
                if self._purge_if_closed(workspace, repository, record):
                    report.removed.append(record.pr_id)
        except Exception as e:
            logger.exception("Failed to process repository %s", full_name)
            report.error = str(e)
            return report

        logger.info(
            "%s: %d open PR(s), notifications %s, removed %s",
            full_name,
            report.open_pull_requests,
            report.notifications or "{}",
            report.removed or "[]",
        )
        return report

    def notify(self, pr: PullRequestSnapshot, repository: str) -> NotificationKind:
        """Queue whatever message the snapshot calls for and return its kind."""
        record = self._store.lookup(pr.id)
        notification = render(pr, has_thread=record is not None, mentions=self._mentions)

        if notification is None:
            logger.debug("No update needed for PR #%s", pr.id)
            return NotificationKind.NO_CHANGE

        if record is None:
            self._queue.enqueue(notification.text, pr_id=pr.id, repository=repository)
        else:
            self._queue.enqueue(notification.text, parent_thread_id=record.thread_id)
        logger.debug("Queued %s for PR #%s in %s", notification.kind.value, pr.id, repository)
        return notification.kind

    def _notify_repository(self, workspace: WorkspaceConfig, repository: str) -> RepositoryReport:
        full_name = workspace.full_name(repository)
        report = RepositoryReport(repository=full_name)
        try:
            snapshots = self._reader.list_open_pull_requests(workspace.name, repository)
            report.open_pull_requests = len(snapshots)
            for pr in snapshots:
                report.count(self.notify(pr, full_name))
        except Exception as e:
            logger.exception("Failed to process repository %s", full_name)
            report.error = str(e)
        logger.info("Found %d open PR(s) in %s", report.open_pull_requests, full_name)
        return report

    def _purge_if_closed(self, workspace: WorkspaceConfig, repository: str, record: ThreadRecord) -> bool:
        full_name = workspace.full_name(repository)
        try:
            status = self._reader.get_status(workspace.name, repository, record.pr_id)
            if status == OPEN:
                return False
            removed = self._store.remove(record.pr_id, full_name)
        except Exception as e:
            logger.error("Failed to check PR status #%s in %s: %s", record.pr_id, full_name, e)
            return False
        if removed:
            logger.info("Removed %s PR #%s from store for %s", status.lower(), record.pr_id, full_name)
        return removed
