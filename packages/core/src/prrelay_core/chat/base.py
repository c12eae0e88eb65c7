"""Chat gateway interface.

The delivery queue only needs three calls from a messenger: post a root
message, open a thread on it, and reply into a thread. Gateways translate
their transport failures into the delivery error taxonomy so the queue can
tell a rate limit (retry later) from everything else (drop).
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class ChatGateway(ABC):
    @abstractmethod
    def post_root(self, text: str) -> str:
        """Post a new message to the destination chat and return its id."""

    @abstractmethod
    def create_thread(self, message_id: str) -> str:
        """Open a thread on a posted message and return the thread id."""

    @abstractmethod
    def post_reply(self, thread_id: str, text: str) -> str:
        """Post a reply into an existing thread and return the new message id."""

    def close(self) -> None:
        """Release transport resources. No-op by default."""
