"""
app/domain/cancellation.py

Cooperative cancellation token threaded through every external call.
"""

from __future__ import annotations

import threading
import time

from app.domain.errors import OperationCancelledError


class CancellationToken:
    """
    Cancellation flag with an optional monotonic deadline.

    Child tokens created with ``with_timeout`` share the parent's event, so
    cancelling the parent cancels every child, while each child may carry a
    tighter deadline of its own.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float | None = None,
        _event: threading.Event | None = None,
        _deadline: float | None = None,
    ) -> None:
        self._event = _event or threading.Event()
        if timeout_seconds is not None:
            candidate = time.monotonic() + max(0.0, timeout_seconds)
            _deadline = candidate if _deadline is None else min(_deadline, candidate)
        self._deadline = _deadline

    @classmethod
    def none(cls) -> CancellationToken:
        return cls()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self, default: float | None = None) -> float | None:
        """
        Seconds left before the deadline, capped by ``default`` when given.
        """

        if self._deadline is None:
            return default
        left = max(0.0, self._deadline - time.monotonic())
        return left if default is None else min(left, default)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelledError("Operation was cancelled.")
        if self.expired:
            raise OperationCancelledError("Operation deadline exceeded.")

    def with_timeout(self, seconds: float) -> CancellationToken:
        return CancellationToken(timeout_seconds=seconds, _event=self._event, _deadline=self._deadline)

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True early when cancelled."""
        return self._event.wait(timeout=seconds)
