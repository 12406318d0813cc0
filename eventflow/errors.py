"""
Error taxonomy shared by the store, the engine and the web layer.

The web app maps each class to an HTTP status; nothing here retries.
"""

from __future__ import annotations


class EventFlowError(Exception):
    """Base class for all engine errors."""


class NotFoundError(EventFlowError):
    """A referenced tournament / match / performer id does not exist."""

    def __init__(self, kind: str, ident: object) -> None:
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} {ident!r} not found")


class InvalidGraphError(EventFlowError):
    """The stored match graph is not a single-rooted DAG."""


class PreconditionError(EventFlowError):
    """The caller supplied arguments the operation refuses to apply."""


class StoreError(EventFlowError):
    """Raised when the underlying store fails; the transaction was rolled back."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.cause = cause
        super().__init__(message)
