"""
app/connectors/base.py

Source client contracts and shared HTTP mechanics.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Protocol, runtime_checkable

import requests

from app.config import ExternalHTTPSettings
from app.domain.cancellation import CancellationToken
from app.domain.context_report import ResolvedLocation
from app.domain.errors import OperationCancelledError, SourceUnavailableError
from app.domain.neighborhood import NeighborhoodGeometry

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
USER_AGENT = "neighborhood-context/1.0"


@runtime_checkable
class SourceClient(Protocol):
    """
    One external data provider for one enrichment category.

    ``fetch`` returns the parsed payload, or None when the provider has no
    data for the location. Transport failures raise ``SourceUnavailableError``.
    """

    name: str
    url: str
    license: str

    def fetch(self, location: ResolvedLocation, radius_meters: int, ctx: CancellationToken) -> Any:
        ...


class LocationResolver(Protocol):
    name: str
    url: str
    license: str

    def resolve(self, text: str, ctx: CancellationToken) -> ResolvedLocation | None:
        ...


class GeoClient(Protocol):
    def list_neighborhoods(self, city: str, ctx: CancellationToken) -> list[NeighborhoodGeometry]:
        ...

    def list_municipalities(self, ctx: CancellationToken) -> list[str]:
        ...


class HttpSourceClient:
    """
    Base for ``requests``-backed source clients.

    Each worker thread gets its own ``requests.Session`` unless one is
    injected, in which case every call shares it.
    """

    name: str = ""
    url: str = ""
    license: str = ""

    def __init__(
        self,
        *,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        self._shared_session = session
        self._local = threading.local()
        self._timeout_seconds = http_settings.timeout_seconds
        self._max_retries = http_settings.max_retries
        self._backoff_initial_seconds = http_settings.backoff_initial_seconds
        self._backoff_multiplier = http_settings.backoff_multiplier
        self._min_request_interval_seconds = (
            1.0 / http_settings.rate_limit_per_second if http_settings.rate_limit_per_second > 0 else 0.0
        )
        self._last_request_monotonic: float = 0.0
        self._rate_lock = threading.Lock()

    def _session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = USER_AGENT
            self._local.session = session
        return session

    def _request_json(
        self,
        *,
        method: str,
        url: str,
        ctx: CancellationToken,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Execute an HTTP request and return parsed JSON with retry support.
        """

        response = self._request(method=method, url=url, ctx=ctx, params=params, data=data, headers=headers)
        try:
            return response.json()
        except ValueError as exc:
            raise SourceUnavailableError(self.name, "response was not valid JSON.") from exc

    def _request(
        self,
        *,
        method: str,
        url: str,
        ctx: CancellationToken,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        """
        Execute an HTTP request with rate limiting and exponential backoff.

        The per-attempt timeout never exceeds the time left on ``ctx``.
        """

        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            ctx.raise_if_cancelled()
            self._apply_rate_limit(ctx)
            timeout = ctx.remaining(default=self._timeout_seconds)
            if timeout is not None and timeout <= 0:
                raise OperationCancelledError("Operation deadline exceeded.")
            try:
                response = self._session().request(
                    method=method,
                    url=url,
                    params=params,
                    data=data,
                    headers=headers,
                    timeout=timeout,
                )
                if response.status_code in RETRYABLE_STATUS_CODES:
                    raise requests.HTTPError(
                        f"Retryable HTTP status code: {response.status_code}",
                        response=response,
                    )
                response.raise_for_status()
                return response
            except requests.HTTPError as exc:
                last_error = exc
                status_code = exc.response.status_code if exc.response is not None else None
                if status_code not in RETRYABLE_STATUS_CODES:
                    logger.error(
                        "Source request failed source=%s status=%s url=%s error=%s",
                        self.name,
                        status_code,
                        url,
                        exc,
                    )
                    raise SourceUnavailableError(self.name, f"request failed with status {status_code}.") from exc
            except (requests.Timeout, requests.ConnectionError) as exc:
                last_error = exc

            if attempt >= self._max_retries:
                break

            backoff_seconds = self._backoff_initial_seconds * (self._backoff_multiplier**attempt)
            logger.warning(
                "Source request retry source=%s attempt=%s/%s wait_seconds=%.2f url=%s",
                self.name,
                attempt + 1,
                self._max_retries,
                backoff_seconds,
                url,
            )
            if ctx.wait(ctx.remaining(default=backoff_seconds) or 0.0):
                ctx.raise_if_cancelled()

        logger.error(
            "Source request exhausted retries source=%s url=%s error=%s",
            self.name,
            url,
            last_error,
        )
        raise SourceUnavailableError(self.name, "request failed after retries.") from last_error

    def _apply_rate_limit(self, ctx: CancellationToken) -> None:
        """
        Enforce minimum interval between outbound requests across threads.
        """

        if self._min_request_interval_seconds <= 0:
            return

        with self._rate_lock:
            now = time.monotonic()
            elapsed = now - self._last_request_monotonic
            remaining = self._min_request_interval_seconds - elapsed
            if remaining > 0:
                ctx.wait(remaining)
            self._last_request_monotonic = time.monotonic()
        ctx.raise_if_cancelled()
