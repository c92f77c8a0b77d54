"""Ledger error hierarchy.

Callers of the public engine functions see these instead of raw store
exceptions. Cascading side effects (notifications, broadcasts, crate keys
granted by a level-up) never raise; they log and carry on.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error raised by the progression ledger."""

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(LedgerError):
    """The request is malformed or violates a precondition. Nothing was mutated."""


class NotFoundError(LedgerError):
    """A mission, achievement or catalog item the step needs does not exist."""


class TransientStoreError(LedgerError):
    """The store rejected or lost a write. Already committed writes stand."""
