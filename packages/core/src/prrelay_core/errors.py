"""Error taxonomy for the relay.

Steady-state errors are contained at the smallest unit of work (one queued
message, one repository pass); only StartupError is fatal. Thread store
failures (ValidationError, IntegrityError) live in prrelay_store.errors.
"""

from __future__ import annotations


class PrRelayError(Exception):
    """Base class for relay errors."""


class DeliveryError(PrRelayError):
    """The chat gateway rejected or failed to complete a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientDeliveryError(DeliveryError):
    """Rate-limited (HTTP 429); the queue retries on the next drain trigger."""


class PermanentDeliveryError(DeliveryError):
    """Any other gateway failure; the queued message is dropped."""


class UpstreamReadError(PrRelayError):
    """The review system could not be read for one repository."""


class StartupError(PrRelayError):
    """Credential validation or store initialization failed; the relay must not start."""
