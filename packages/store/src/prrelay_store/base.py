"""Abstract thread store interface.

The engine and the delivery queue depend on BaseThreadStore, not on a
concrete backend, so the JSON file and SQLite backends are swappable
without touching delivery code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from prrelay_store.errors import ValidationError

if TYPE_CHECKING:
    from prrelay_store.models import ThreadRecord


class BaseThreadStore(ABC):
    """Durable map of pull request id -> chat thread.

    Every mutation must be persisted and read back before returning, so a
    corrupted or half-written backing medium is detected at write time rather
    than on the next poll.
    """

    @abstractmethod
    def lookup(self, pr_id: int) -> ThreadRecord | None:
        """Return the record for a PR, or None. Absence is not an error."""

    @abstractmethod
    def put(self, pr_id: int, thread_id: str, repository: str) -> ThreadRecord:
        """Create or overwrite the record for a PR and verify the write.

        Raises ValidationError for empty arguments and IntegrityError when the
        value read back differs from the one written.
        """

    @abstractmethod
    def remove(self, pr_id: int, repository: str) -> bool:
        """Delete the record for a PR if it belongs to ``repository``.

        Returns False without raising when the record is absent or is owned by
        a different repository. Raises IntegrityError if the record is still
        present after deletion.
        """

    @abstractmethod
    def list_all(self) -> list[ThreadRecord]:
        """Return every tracked thread, in insertion order."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional; subclasses that need cleanup should override this.
        """

    @staticmethod
    def _validate(pr_id: int, thread_id: str, repository: str) -> None:
        if not pr_id or not thread_id or not repository:
            raise ValidationError(
                f"Invalid thread data for storage: pr_id={pr_id!r}, "
                f"thread_id={thread_id!r}, repository={repository!r}"
            )

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
