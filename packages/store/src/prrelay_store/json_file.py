"""JsonFileThreadStore: the default thread store, a single JSON document on disk.

Why a plain JSON file:
- Zero infra: the relay runs as one process next to one file; no DB to
  provision for a map that rarely exceeds a few hundred entries.
- Inspectable: operators can read (or hand-edit, with the relay stopped)
  which PR is linked to which chat thread.
- Atomic document: the whole map is rewritten on every mutation through a
  temp file + os.replace, so a crash mid-write leaves the previous version.

Data format:
    {
      "42": {"thread_id": "9001", "repository": "acme/backend",
             "updated_at": "2024-05-01T10:00:00+00:00"}
    }

After each write the file is read back from disk and compared with what was
written; a mismatch raises IntegrityError instead of silently diverging
from the in-memory view.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from prrelay_store.base import BaseThreadStore
from prrelay_store.errors import IntegrityError, StoreError
from prrelay_store.models import ThreadRecord

logger = logging.getLogger(__name__)


class JsonFileThreadStore(BaseThreadStore):
    """Stores thread records in a single JSON file.

    The path defaults to `.prrelay_threads.json` in the current working
    directory. Configure via .prrelay.yml: `store_path: /var/lib/prrelay/threads.json`.
    """

    def __init__(self, path: str = ".prrelay_threads.json"):
        self._path = Path(path)
        self._lock = threading.Lock()
        self._records: dict[str, dict] = {}
        self._initialize()

    @property
    def path(self) -> Path:
        return self._path

    def _initialize(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._records = self._read_file()
        except FileNotFoundError:
            self._records = {}
            self._write_file(self._records)
            logger.info("Created new thread store at %s", self._path)
            return
        except (OSError, ValueError) as e:
            raise StoreError(f"Failed to load thread store {self._path}: {e}") from e

        logger.info("Thread store loaded from %s (%d entries)", self._path, len(self._records))

    # ------------------------------------------------------------------ #
    # BaseThreadStore                                                      #
    # ------------------------------------------------------------------ #

    def lookup(self, pr_id: int) -> ThreadRecord | None:
        with self._lock:
            data = self._records.get(str(pr_id))
        if data is None:
            logger.debug("No thread stored for PR #%s", pr_id)
            return None
        return self._from_dict(pr_id, data)

    def put(self, pr_id: int, thread_id: str, repository: str) -> ThreadRecord:
        self._validate(pr_id, thread_id, repository)
        key = str(pr_id)
        entry = {"thread_id": str(thread_id), "repository": repository, "updated_at": self._now()}

        with self._lock:
            records = {**self._records, key: entry}
            self._write_file(records)
            self._records = records
            persisted = self._read_file().get(key)

        if persisted is None or persisted.get("thread_id") != entry["thread_id"] or (
            persisted.get("repository") != repository
        ):
            logger.error(
                "Thread id verification failed for PR #%s: expected %s, stored %s",
                pr_id,
                entry,
                persisted,
            )
            raise IntegrityError(f"Thread id verification failed for PR #{pr_id}")

        logger.debug("Saved thread %s for PR #%s (%s)", thread_id, pr_id, repository)
        return self._from_dict(pr_id, persisted)

    def remove(self, pr_id: int, repository: str) -> bool:
        key = str(pr_id)
        with self._lock:
            stored = self._records.get(key)
            if stored is None:
                logger.debug("PR #%s not found in store, nothing to remove", pr_id)
                return False

            if stored.get("repository") != repository:
                logger.warning(
                    "Repository mismatch during removal of PR #%s: stored %s, requested %s",
                    pr_id,
                    stored.get("repository"),
                    repository,
                )
                return False

            records = {k: v for k, v in self._records.items() if k != key}
            self._write_file(records)
            self._records = records
            still_present = key in self._read_file()

        if still_present:
            logger.error("Removal verification failed for PR #%s", pr_id)
            raise IntegrityError(f"Removal verification failed for PR #{pr_id}")

        logger.debug("Removed PR #%s (%s) from store", pr_id, repository)
        return True

    def list_all(self) -> list[ThreadRecord]:
        with self._lock:
            items = list(self._records.items())
        return [self._from_dict(int(key), data) for key, data in items]

    # ------------------------------------------------------------------ #
    # File I/O                                                             #
    # ------------------------------------------------------------------ #

    def _read_file(self) -> dict[str, dict]:
        data = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return data

    def _write_file(self, records: dict[str, dict]) -> None:
        """Atomically replace the file with ``records``. The in-memory map is left to the caller."""
        content = json.dumps(records, indent=2, ensure_ascii=False)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        logger.debug("Wrote thread store %s (%d entries)", self._path, len(records))

    @staticmethod
    def _from_dict(pr_id: int, d: dict) -> ThreadRecord:
        return ThreadRecord(
            pr_id=int(pr_id),
            thread_id=str(d.get("thread_id", "")),
            repository=d.get("repository", ""),
            updated_at=d.get("updated_at", ""),
        )
