"""
app/ttl_cache.py

Thread-safe in-process key/value cache with per-entry expiry.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any

MISSING: Any = object()


class TTLCache:
    """
    Dict guarded by a lock; entries expire ``ttl_seconds`` after being set.

    ``get`` returns ``MISSING`` on a miss so that ``None`` can be cached as a
    negative result.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return MISSING
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return MISSING
            return value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self._ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
