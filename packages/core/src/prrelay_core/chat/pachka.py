"""Pachca (Pachka) messenger gateway.

API surface used:
    POST /messages                  {"message": {"content", "entity_type", "entity_id"}}
    POST /messages/{id}/thread      -> {"data": {"id": <thread id>}}

Root messages go to the configured chat (entity_type "discussion"); replies
go to a thread (entity_type "thread"). Root and thread responses must carry
the new object's id under ``data.id``; a 2xx reply is accepted whatever its body.
"""

from __future__ import annotations

import logging

import requests

from prrelay_core.chat.base import ChatGateway
from prrelay_core.errors import PermanentDeliveryError, TransientDeliveryError

logger = logging.getLogger(__name__)

_RATE_LIMITED = 429


class PachkaGateway(ChatGateway):
    def __init__(
        self,
        api_url: str,
        token: str,
        chat_id: str,
        timeout: float = 10,
        session: requests.Session | None = None,
    ):
        self._api_url = api_url.rstrip("/")
        self._chat_id = chat_id
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Content-Type": "application/json; charset=utf-8",
                "Authorization": f"Bearer {token}",
            }
        )

    def post_root(self, text: str) -> str:
        data = self._post(
            "/messages",
            {"message": {"content": text, "entity_type": "discussion", "entity_id": self._chat_id}},
        )
        return self._extract_id(data, "message")

    def create_thread(self, message_id: str) -> str:
        data = self._post(f"/messages/{message_id}/thread")
        thread_id = self._extract_id(data, "thread")
        logger.debug("Created thread %s on message %s", thread_id, message_id)
        return thread_id

    def post_reply(self, thread_id: str, text: str) -> str:
        """Reply into a thread. Any 2xx response counts as delivered; the id may be empty."""
        data = self._post(
            "/messages",
            {"message": {"content": text, "entity_type": "thread", "entity_id": thread_id}},
            strict=False,
        )
        obj = data.get("data") if isinstance(data, dict) else None
        reply_id = obj.get("id") if isinstance(obj, dict) else None
        if reply_id is None:
            logger.debug("Reply to thread %s accepted without a message id", thread_id)
            return ""
        return str(reply_id)

    def close(self) -> None:
        self._session.close()

    def _post(self, path: str, payload: dict | None = None, strict: bool = True):
        try:
            response = self._session.post(f"{self._api_url}{path}", json=payload, timeout=self._timeout)
        except requests.RequestException as e:
            # Timeouts and connection errors are treated like any non-429 failure.
            raise PermanentDeliveryError(f"POST {path} failed: {e}") from e

        if response.status_code == _RATE_LIMITED:
            raise TransientDeliveryError(f"POST {path} rate limited", status_code=response.status_code)
        if not response.ok:
            raise PermanentDeliveryError(
                f"POST {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            if not strict:
                return None
            raise PermanentDeliveryError(f"POST {path} returned a non-JSON body", response.status_code) from e

    @staticmethod
    def _extract_id(data: dict, what: str) -> str:
        obj = data.get("data") if isinstance(data, dict) else None
        object_id = obj.get("id") if isinstance(obj, dict) else None
        if object_id is None:
            raise PermanentDeliveryError(f"Unexpected {what} response shape: missing data.id")
        return str(object_id)
