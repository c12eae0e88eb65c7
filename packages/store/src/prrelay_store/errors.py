"""Thread store error taxonomy.

Kept in the store package so backends can raise them without importing
prrelay_core. Callers treat every StoreError raised from a mutation as a
permanent failure of the operation that triggered it; nothing here is retried.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for thread store failures (including unreadable backing files)."""


class ValidationError(StoreError):
    """A write was attempted with an empty or zero argument."""


class IntegrityError(StoreError):
    """The value read back after a mutation does not match what was written."""
