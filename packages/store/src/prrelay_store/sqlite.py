"""SQLiteThreadStore: thread store for deployments that already keep a state volume.

Why SQLite as the alternative backend:
- Batteries included: ships with Python, no extra dependencies.
- Per-row writes: a mutation touches one row instead of rewriting the whole
  JSON document, while keeping the same read-back verification contract.

Schema:
  threads: one row per tracked pull request, keyed by PR id.
"""

from __future__ import annotations

import logging
import sqlite3
import threading

from prrelay_store.base import BaseThreadStore
from prrelay_store.errors import IntegrityError, StoreError
from prrelay_store.models import ThreadRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS threads (
    pr_id       INTEGER PRIMARY KEY,
    thread_id   TEXT NOT NULL,
    repository  TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    created_seq INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_threads_repo ON threads (repository);
"""


class SQLiteThreadStore(BaseThreadStore):
    """Stores thread records in a local SQLite database file.

    Configure via .prrelay.yml: `store: sqlite` and `store_path: /path/to/prrelay.db`.
    The connection is shared between the poll and drain threads, so every
    access goes through one lock.
    """

    def __init__(self, db_path: str = ".prrelay.db"):
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open thread store {db_path}: {e}") from e

    def lookup(self, pr_id: int) -> ThreadRecord | None:
        with self._lock:
            row = self._fetch(pr_id)
        return self._row_to_record(row) if row is not None else None

    def put(self, pr_id: int, thread_id: str, repository: str) -> ThreadRecord:
        self._validate(pr_id, thread_id, repository)
        with self._lock:
            # Keep the original position in list_all() when a record is overwritten.
            self._conn.execute(
                """
                INSERT INTO threads (pr_id, thread_id, repository, updated_at, created_seq)
                VALUES (?, ?, ?, ?, (SELECT COALESCE(MAX(created_seq), 0) + 1 FROM threads))
                ON CONFLICT(pr_id) DO UPDATE SET
                    thread_id = excluded.thread_id,
                    repository = excluded.repository,
                    updated_at = excluded.updated_at
                """,
                (pr_id, str(thread_id), repository, self._now()),
            )
            self._conn.commit()
            row = self._fetch(pr_id)

        if row is None or row["thread_id"] != str(thread_id) or row["repository"] != repository:
            logger.error("Thread id verification failed for PR #%s", pr_id)
            raise IntegrityError(f"Thread id verification failed for PR #{pr_id}")
        return self._row_to_record(row)

    def remove(self, pr_id: int, repository: str) -> bool:
        with self._lock:
            row = self._fetch(pr_id)
            if row is None:
                return False
            if row["repository"] != repository:
                logger.warning(
                    "Repository mismatch during removal of PR #%s: stored %s, requested %s",
                    pr_id,
                    row["repository"],
                    repository,
                )
                return False

            self._conn.execute("DELETE FROM threads WHERE pr_id=?", (pr_id,))
            self._conn.commit()
            still_present = self._fetch(pr_id) is not None

        if still_present:
            raise IntegrityError(f"Removal verification failed for PR #{pr_id}")
        return True

    def list_all(self) -> list[ThreadRecord]:
        with self._lock:
            rows = self._conn.execute("SELECT * FROM threads ORDER BY created_seq").fetchall()
        return [self._row_to_record(r) for r in rows]

    def close(self) -> None:
        self._conn.close()

    def _fetch(self, pr_id: int) -> sqlite3.Row | None:
        return self._conn.execute("SELECT * FROM threads WHERE pr_id=?", (pr_id,)).fetchone()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ThreadRecord:
        return ThreadRecord(
            pr_id=row["pr_id"],
            thread_id=row["thread_id"],
            repository=row["repository"],
            updated_at=row["updated_at"],
        )
