"""
app/domain/errors.py

Error taxonomy shared by the enrichment pipeline and the batch job executor.
"""

from __future__ import annotations

from collections.abc import Sequence


class ContextServiceError(Exception):
    """Base exception for context enrichment and batch job failures."""


class ValidationFailure(ContextServiceError):
    """
    Raised for bad input, including addresses that cannot be resolved.

    Surfaced to the caller as-is and never retried.
    """

    def __init__(self, messages: Sequence[str] | str) -> None:
        if isinstance(messages, str):
            messages = [messages]
        self.messages: list[str] = list(messages)
        super().__init__("; ".join(self.messages))


class SourceUnavailableError(ContextServiceError):
    """Raised by a source client when its upstream cannot deliver data."""

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        super().__init__(f"{source}: {message}")


class ProcessorFailure(ContextServiceError):
    """Raised by a job processor when an upstream prerequisite fails."""


class ConflictError(ContextServiceError):
    """Raised when a job state transition is not allowed from its current state."""


class NotFoundError(ContextServiceError):
    """Raised when a referenced job does not exist."""


class OperationCancelledError(ContextServiceError):
    """Raised when work stops because its cancellation token fired or the job was cancelled."""
