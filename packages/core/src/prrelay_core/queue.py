"""Outbound delivery queue.

Messages are appended by the poll activity and delivered one at a time by
the drain activity:

    enqueue() ──► [head, …, tail]
                     │
    drain() ──► peek head → gateway → (root only) create thread → store.put
                     │
                     ├─ success            → pop head
                     ├─ 429, retries left  → retries += 1, keep head
                     └─ anything else      → pop head, log

A rate-limited head item is retried on the *next* drain trigger, never
within the same attempt, and later items wait behind it, so ordering is
strictly head-of-line. At most one drain is in flight at any time.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from prrelay_core.errors import PermanentDeliveryError, TransientDeliveryError
from prrelay_store.errors import StoreError

if TYPE_CHECKING:
    from prrelay_core.chat.base import ChatGateway
    from prrelay_store.base import BaseThreadStore

logger = logging.getLogger(__name__)

MAX_RETRIES = 3


@dataclass
class QueuedMessage:
    text: str
    parent_thread_id: str | None = None  # None means "post a new root message"
    pr_id: int | None = None  # set only on root posts that must record a thread
    repository: str | None = None
    retries: int = 0


class DrainOutcome(str, Enum):
    SKIPPED = "skipped"  # already draining, or nothing queued
    DELIVERED = "delivered"
    RETRY_DEFERRED = "retry_deferred"
    DROPPED = "dropped"


class DeliveryQueue:
    def __init__(self, gateway: ChatGateway, store: BaseThreadStore, max_retries: int = MAX_RETRIES):
        self._gateway = gateway
        self._store = store
        self._max_retries = max_retries
        self._items: deque[QueuedMessage] = deque()
        self._items_lock = threading.Lock()
        self._drain_lock = threading.Lock()

    def __len__(self) -> int:
        with self._items_lock:
            return len(self._items)

    @property
    def is_draining(self) -> bool:
        return self._drain_lock.locked()

    def pending(self) -> list[QueuedMessage]:
        with self._items_lock:
            return list(self._items)

    def enqueue(
        self,
        text: str,
        parent_thread_id: str | None = None,
        pr_id: int | None = None,
        repository: str | None = None,
    ) -> QueuedMessage:
        message = QueuedMessage(text=text, parent_thread_id=parent_thread_id, pr_id=pr_id, repository=repository)
        with self._items_lock:
            self._items.append(message)
            length = len(self._items)
        logger.debug("Queued message (pr=%s, reply=%s); queue length %d", pr_id, parent_thread_id is not None, length)
        return message

    def drain(self) -> DrainOutcome:
        """Attempt delivery of the head item. Never overlaps with another drain."""
        if not self._drain_lock.acquire(blocking=False):
            return DrainOutcome.SKIPPED
        try:
            with self._items_lock:
                if not self._items:
                    return DrainOutcome.SKIPPED
                message = self._items[0]
            return self._attempt(message)
        finally:
            self._drain_lock.release()

    def _attempt(self, message: QueuedMessage) -> DrainOutcome:
        try:
            self._deliver(message)
        except TransientDeliveryError as e:
            if message.retries < self._max_retries:
                message.retries += 1
                logger.warning(
                    "Rate limited delivering message for PR %s (retry %d/%d): %s",
                    message.pr_id,
                    message.retries,
                    self._max_retries,
                    e,
                )
                return DrainOutcome.RETRY_DEFERRED
            logger.error(
                "Dropping message for PR %s after %d retries: %s", message.pr_id, self._max_retries, e
            )
            self._pop(message)
            return DrainOutcome.DROPPED
        except (PermanentDeliveryError, StoreError) as e:
            logger.error("Dropping message for PR %s (%s): %s", message.pr_id, type(e).__name__, e)
            self._pop(message)
            return DrainOutcome.DROPPED
        except Exception:
            logger.exception("Dropping message for PR %s after unexpected error", message.pr_id)
            self._pop(message)
            return DrainOutcome.DROPPED

        self._pop(message)
        return DrainOutcome.DELIVERED

    def _deliver(self, message: QueuedMessage) -> None:
        if message.parent_thread_id:
            self._gateway.post_reply(message.parent_thread_id, message.text)
            logger.info("Posted reply to thread %s", message.parent_thread_id)
            return

        message_id = self._gateway.post_root(message.text)
        thread_id = self._gateway.create_thread(message_id)
        logger.info("Posted root message %s with thread %s (PR %s)", message_id, thread_id, message.pr_id)

        if message.pr_id and message.repository:
            self._store.put(message.pr_id, thread_id, message.repository)

    def _pop(self, message: QueuedMessage) -> None:
        with self._items_lock:
            if self._items and self._items[0] is message:
                self._items.popleft()
