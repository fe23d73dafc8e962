"""
app/enrichment/aggregator.py

Concurrent fan-out to every configured source client for one location.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Any

from app.connectors.base import SourceClient
from app.domain.cancellation import CancellationToken
from app.domain.context_report import AggregateResult, ResolvedLocation
from app.domain.errors import OperationCancelledError

logger = logging.getLogger(__name__)

POLL_SECONDS = 0.05


def unavailable_warning(source_name: str, *, timed_out: bool = False) -> str:
    suffix = " (timed out)" if timed_out else ""
    return f"Source {source_name} unavailable{suffix}"


class SourceAggregator:
    """
    Call all sources in parallel and collect per-source outcomes.

    One source failing or timing out only produces a warning and a None
    payload for that source; siblings keep running. Only an explicit
    cancellation of the caller's token aborts the whole fan-out.
    """

    def __init__(
        self,
        sources: Sequence[SourceClient],
        *,
        timeout_seconds: float | None = None,
    ) -> None:
        self._sources = list(sources)
        self._timeout_seconds = timeout_seconds

    @property
    def sources(self) -> list[SourceClient]:
        return list(self._sources)

    def aggregate(self, location: ResolvedLocation, radius_meters: int, ctx: CancellationToken) -> AggregateResult:
        ctx.raise_if_cancelled()
        if not self._sources:
            return AggregateResult(per_source={}, warnings=[])

        scoped = ctx.with_timeout(self._timeout_seconds) if self._timeout_seconds else ctx
        pool = ThreadPoolExecutor(max_workers=len(self._sources), thread_name_prefix="context-source")
        futures: dict[str, Future[Any]] = {
            source.name: pool.submit(source.fetch, location, radius_meters, scoped) for source in self._sources
        }
        try:
            pending = set(futures.values())
            while pending and not scoped.cancelled:
                remaining = scoped.remaining()
                if remaining is not None and remaining <= 0:
                    break
                slice_seconds = POLL_SECONDS if remaining is None else min(POLL_SECONDS, remaining)
                _, pending = wait(pending, timeout=slice_seconds, return_when=FIRST_COMPLETED)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        if ctx.cancelled:
            raise OperationCancelledError("Operation was cancelled.")

        per_source: dict[str, Any] = {}
        retrieved_at: dict[str, datetime] = {}
        warnings: list[str] = []
        for source in self._sources:
            future = futures[source.name]
            if not future.done():
                logger.warning("Context source timed out source=%s", source.name)
                per_source[source.name] = None
                warnings.append(unavailable_warning(source.name, timed_out=True))
                continue

            error = future.exception() if not future.cancelled() else OperationCancelledError("cancelled")
            if error is None:
                per_source[source.name] = future.result()
                retrieved_at[source.name] = datetime.now(timezone.utc)
                continue

            per_source[source.name] = None
            timed_out = isinstance(error, OperationCancelledError)
            logger.warning("Context source failed source=%s error=%s", source.name, error)
            warnings.append(unavailable_warning(source.name, timed_out=timed_out))

        return AggregateResult(per_source=per_source, warnings=warnings, retrieved_at=retrieved_at)
