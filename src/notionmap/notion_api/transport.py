"""Sync and async HTTP transports for the Notion API.

Each transport handles the full request lifecycle:

1. Acquire a token-bucket slot (wait if needed).
2. Send the HTTP request with auth and version headers.
3. On ``2xx`` -- return the parsed JSON response.
4. On ``429`` -- honour ``Retry-After``, sleep, and retry.
5. On ``5xx`` / network error -- exponential backoff and retry.
6. On non-retryable ``4xx`` -- raise the matching typed error immediately.
7. On max attempts exceeded -- raise :class:`NotionmapRetryExhaustedError`
   (or :class:`NotionmapNetworkError` when the last failure was a network
   error).
"""

from __future__ import annotations

import asyncio
import json as _json
import sys
import time
from collections.abc import AsyncIterator, Iterator
from typing import Any

import httpx

from notionmap.config import NotionmapConfig
from notionmap.errors import (
    NotionmapAuthError,
    NotionmapNetworkError,
    NotionmapNotFoundError,
    NotionmapPermissionError,
    NotionmapRetryExhaustedError,
    NotionmapValidationError,
)
from notionmap.observability import get_logger, resolve_metrics

from .rate_limit import AsyncTokenBucket, TokenBucket
from .retries import _RETRYABLE_STATUSES, compute_backoff, should_retry

log = get_logger("notionmap.transport")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_retry_after(response: httpx.Response) -> float | None:
    """Extract the ``Retry-After`` header value as a float, or ``None``."""
    raw = response.headers.get("retry-after")
    if raw is None:
        return None
    try:
        return float(raw)
    except (ValueError, TypeError):
        return None


def _raise_for_status(response: httpx.Response, method: str, path: str) -> None:
    """Raise the :class:`NotionmapError` subclass for a non-retryable 4xx."""
    status = response.status_code
    try:
        body = response.json()
    except (ValueError, KeyError):
        body = {}
    if not isinstance(body, dict):
        body = {}

    notion_message = body.get("message", response.text[:500])
    notion_code = body.get("code", "")

    if status == 401:
        raise NotionmapAuthError(
            message=f"Authentication failed on {method} {path}: {notion_message}",
            context={"status_code": status, "notion_code": notion_code},
        )
    if status == 403:
        raise NotionmapPermissionError(
            message=f"Permission denied on {method} {path}: {notion_message}",
            context={
                "status_code": status,
                "notion_code": notion_code,
                "operation": f"{method} {path}",
            },
        )
    # Notion reports unshared objects as 404 "object_not_found"; a 400 with
    # the same code shows up for malformed ids.
    if status == 404 or notion_code == "object_not_found":
        raise NotionmapNotFoundError(
            message=f"Resource not found on {method} {path}: {notion_message}",
            context={"status_code": status, "notion_code": notion_code, "path": path},
        )

    raise NotionmapValidationError(
        message=f"Client error {status} on {method} {path}: {notion_message}",
        context={"status_code": status, "notion_code": notion_code, "body": body},
    )


def _dump_payload(
    method: str,
    url: str,
    payload: dict | None,
    response_status: int | None,
    response_body: Any | None,
    token: str | None = None,
) -> None:
    """Write a redacted debug dump of the request/response to stderr."""
    from notionmap.utils.redact import redact

    dump: dict[str, Any] = {
        "method": method,
        "url": url,
    }
    if payload is not None:
        dump["request_body"] = payload
    if response_status is not None:
        dump["response_status"] = response_status
    if response_body is not None:
        dump["response_body"] = response_body
    print(
        _json.dumps(redact(dump, token), indent=2, default=str),
        file=sys.stderr,
    )


def _with_cursor(
    method: str,
    kwargs: dict[str, Any],
    cursor: str | None,
    page_size: int,
) -> dict[str, Any]:
    """Merge ``page_size``/``start_cursor`` into the body or query string."""
    slot = "json" if method.upper() in ("POST", "PATCH") else "params"
    merged: dict = dict(kwargs.get(slot) or {})
    merged["page_size"] = page_size
    if cursor is not None:
        merged["start_cursor"] = cursor
    else:
        merged.pop("start_cursor", None)
    return {**kwargs, slot: merged}


class _BaseTransport:
    """Bookkeeping shared by :class:`NotionTransport` and
    :class:`AsyncNotionTransport`; no I/O happens here.
    """

    def __init__(self, config: NotionmapConfig) -> None:
        self._config = config
        self._metrics = resolve_metrics(config.metrics)

    def _client_options(self) -> dict[str, Any]:
        config = self._config
        proxy: httpx.URL | str | None = config.http_proxy
        return {
            "base_url": config.base_url,
            "headers": {
                "Authorization": f"Bearer {config.token}",
                "Notion-Version": config.notion_version,
                "Content-Type": "application/json",
            },
            "timeout": httpx.Timeout(config.timeout_seconds),
            "proxy": proxy,
        }

    def _record_wait(self, wait: float, method: str, path: str) -> None:
        if wait > 0:
            self._metrics.timing(
                "notionmap.rate_limit_wait_ms",
                wait * 1000,
                tags={"method": method, "path": path},
            )

    def _on_network_error(
        self, method: str, path: str, exc: Exception, attempt: int,
    ) -> float:
        """Return the backoff before the next attempt, or raise
        :class:`NotionmapNetworkError` when no attempts remain.
        """
        config = self._config
        self._metrics.increment(
            "notionmap.requests_total",
            tags={"method": method, "path": path, "status": "error"},
        )
        log.warning(
            "Request network error",
            extra={
                "extra_fields": {
                    "op": "request",
                    "method": method,
                    "path": path,
                    "attempt": attempt + 1,
                    "error": str(exc),
                }
            },
        )
        if should_retry(None, exc, attempt, config.retry_max_attempts):
            self._metrics.increment(
                "notionmap.retries_total",
                tags={"method": method, "path": path, "reason": "network_error"},
            )
            return compute_backoff(
                attempt,
                base=config.retry_base_delay,
                maximum=config.retry_max_delay,
                jitter=config.retry_jitter,
            )
        raise NotionmapNetworkError(
            message=f"Network error on {method} {path}: {exc}",
            context={"url": path, "attempt": attempt + 1},
            cause=exc,
        ) from exc

    def _on_response(
        self,
        response: httpx.Response,
        method: str,
        path: str,
        attempt: int,
        elapsed_ms: float,
        json_payload: Any,
    ) -> tuple[dict | None, float | None]:
        """Classify *response*.

        Returns ``(body, None)`` on success, ``(None, delay)`` when the
        request should be retried after *delay* seconds, and
        ``(None, None)`` when a retryable failure has used up every attempt.
        Raises for non-retryable 4xx responses.
        """
        status = response.status_code
        tags = {"method": method, "path": path, "status": str(status)}
        self._metrics.increment("notionmap.requests_total", tags=tags)
        self._metrics.timing("notionmap.request_duration_ms", elapsed_ms, tags=tags)

        if self._config.debug_dump_payload:
            try:
                resp_body = response.json()
            except (ValueError, KeyError):
                resp_body = response.text[:1000]
            _dump_payload(
                method, str(response.url), json_payload,
                status, resp_body, token=self._config.token,
            )

        if 200 <= status < 300:
            if status == 204 or not response.content:
                return {}, None
            result: dict = response.json()
            return result, None

        if status not in _RETRYABLE_STATUSES:
            _raise_for_status(response, method, path)

        if not should_retry(status, None, attempt, self._config.retry_max_attempts):
            return None, None

        retry_after: float | None = None
        reason = "server_error"
        if status == 429:
            retry_after = _parse_retry_after(response)
            reason = "rate_limited"
            self._metrics.increment(
                "notionmap.rate_limited_total",
                tags={"method": method, "path": path},
            )
            log.warning(
                "Rate limited by Notion API",
                extra={
                    "extra_fields": {
                        "op": "request",
                        "method": method,
                        "path": path,
                        "status_code": 429,
                        "retry_after": retry_after,
                        "attempt": attempt + 1,
                    }
                },
            )

        self._metrics.increment(
            "notionmap.retries_total",
            tags={"method": method, "path": path, "reason": reason},
        )
        delay = compute_backoff(
            attempt,
            base=self._config.retry_base_delay,
            maximum=self._config.retry_max_delay,
            jitter=self._config.retry_jitter,
            retry_after=retry_after,
        )
        return None, delay

    def _exhausted(
        self, method: str, path: str, last_status: int | None,
    ) -> NotionmapRetryExhaustedError:
        attempts = self._config.retry_max_attempts
        return NotionmapRetryExhaustedError(
            message=(
                f"All {attempts} attempts exhausted for {method} {path} "
                f"(last status: {last_status})"
            ),
            context={"attempts": attempts, "last_status_code": last_status},
        )


# ---------------------------------------------------------------------------
# Sync transport
# ---------------------------------------------------------------------------

class NotionTransport(_BaseTransport):
    """Synchronous HTTP transport with auth, retry, and rate limiting.

    Parameters
    ----------
    config:
        A :class:`NotionmapConfig` instance controlling transport behaviour.
    """

    def __init__(self, config: NotionmapConfig) -> None:
        super().__init__(config)
        self._bucket = TokenBucket(rate_rps=config.rate_limit_rps, burst=10)
        self._client = httpx.Client(**self._client_options())

    def request(self, method: str, path: str, **kwargs: Any) -> dict:
        """Execute an HTTP request against the Notion API.

        Parameters
        ----------
        method:
            HTTP method (``GET``, ``POST`` ...).
        path:
            API path relative to ``base_url`` (e.g. ``/blocks/{id}``).
        **kwargs:
            Forwarded to :meth:`httpx.Client.request` (``json=``,
            ``params=`` ...).

        Returns
        -------
        dict
            Parsed JSON response body.

        Raises
        ------
        NotionmapAuthError
            On 401 responses.
        NotionmapPermissionError
            On 403 responses.
        NotionmapNotFoundError
            On 404 / ``object_not_found`` responses.
        NotionmapValidationError
            On 400 and other non-retryable 4xx responses.
        NotionmapRetryExhaustedError
            When every attempt ended in 429/5xx.
        NotionmapNetworkError
            When the last attempt failed at the transport level.
        """
        last_status: int | None = None
        json_payload = kwargs.get("json")

        for attempt in range(self._config.retry_max_attempts):
            self._record_wait(self._bucket.acquire(), method, path)

            t0 = time.monotonic()
            try:
                response = self._client.request(method, path, **kwargs)
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                time.sleep(self._on_network_error(method, path, exc, attempt))
                continue
            elapsed_ms = (time.monotonic() - t0) * 1000

            last_status = response.status_code
            body, delay = self._on_response(
                response, method, path, attempt, elapsed_ms, json_payload,
            )
            if body is not None:
                return body
            if delay is None:
                break
            time.sleep(delay)

        raise self._exhausted(method, path, last_status)

    def paginate(self, path: str, **kwargs: Any) -> Iterator[dict]:
        """Auto-paginate a Notion list endpoint, yielding each result item.

        Pass ``method="POST"`` for query endpoints; the cursor then travels
        in the JSON body instead of the query string.
        """
        method = kwargs.pop("method", "GET")
        cursor: str | None = None

        while True:
            data = self.request(
                method, path,
                **_with_cursor(method, kwargs, cursor, self._config.page_size),
            )
            yield from data.get("results", [])

            if not data.get("has_more", False):
                break
            cursor = data.get("next_cursor")
            if cursor is None:
                break

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> NotionTransport:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Async transport
# ---------------------------------------------------------------------------

class AsyncNotionTransport(_BaseTransport):
    """Asynchronous HTTP transport with auth, retry, and rate limiting.

    Mirrors :class:`NotionTransport` on ``httpx.AsyncClient``.
    """

    def __init__(self, config: NotionmapConfig) -> None:
        super().__init__(config)
        self._bucket = AsyncTokenBucket(rate_rps=config.rate_limit_rps, burst=10)
        self._client = httpx.AsyncClient(**self._client_options())

    async def request(self, method: str, path: str, **kwargs: Any) -> dict:
        """Execute an HTTP request against the Notion API (async).

        See :meth:`NotionTransport.request`.
        """
        last_status: int | None = None
        json_payload = kwargs.get("json")

        for attempt in range(self._config.retry_max_attempts):
            self._record_wait(await self._bucket.acquire(), method, path)

            t0 = time.monotonic()
            try:
                response = await self._client.request(method, path, **kwargs)
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                await asyncio.sleep(self._on_network_error(method, path, exc, attempt))
                continue
            elapsed_ms = (time.monotonic() - t0) * 1000

            last_status = response.status_code
            body, delay = self._on_response(
                response, method, path, attempt, elapsed_ms, json_payload,
            )
            if body is not None:
                return body
            if delay is None:
                break
            await asyncio.sleep(delay)

        raise self._exhausted(method, path, last_status)

    async def paginate(self, path: str, **kwargs: Any) -> AsyncIterator[dict]:
        """Auto-paginate a Notion list endpoint (async)."""
        method = kwargs.pop("method", "GET")
        cursor: str | None = None

        while True:
            data = await self.request(
                method, path,
                **_with_cursor(method, kwargs, cursor, self._config.page_size),
            )
            for item in data.get("results", []):
                yield item

            if not data.get("has_more", False):
                break
            cursor = data.get("next_cursor")
            if cursor is None:
                break

    async def close(self) -> None:
        """Close the underlying async HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> AsyncNotionTransport:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
