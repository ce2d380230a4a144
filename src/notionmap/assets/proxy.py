"""Serve assets behind proxy references.

:class:`AssetProxy` is the server side of a proxy reference: it unwraps the
reference, fetches the upstream bytes, and, when the signature has expired,
refreshes the URL once through an :class:`AssetRefresher` before giving up.
A failed asset never surfaces as an error; callers get a small "image
unavailable" SVG with a short cache lifetime instead, so a page renders
with a placeholder rather than a broken layout.

The proxy is framework-agnostic: :meth:`AssetProxy.fetch` returns an
:class:`AssetResponse` that a web handler copies into its own response.
"""

from __future__ import annotations

import json
import time

import httpx

from notionmap.config import NotionmapConfig
from notionmap.errors import NotionmapAssetNotRecoverableError, NotionmapStaleAssetError
from notionmap.models import AssetResponse, ProxyMetadata
from notionmap.notion_api.retries import (
    RETRYABLE_EXCEPTIONS,
    compute_backoff,
    should_retry_asset,
)
from notionmap.observability import get_logger, resolve_metrics
from notionmap.utils.redact import mask_presigned_url

from .refresh import AssetRefresher, is_stale_status
from .urls import parse_proxy_reference

log = get_logger("notionmap.assets.proxy")

PLACEHOLDER_SVG: bytes = (
    b'<?xml version="1.0" encoding="UTF-8"?>'
    b"<svg xmlns='http://www.w3.org/2000/svg' width='400' height='300' "
    b"viewBox='0 0 400 300' role='img' aria-label='Image unavailable'>"
    b"<rect width='100%' height='100%' fill='#f3f4f6'/>"
    b"<text x='50%' y='50%' dominant-baseline='middle' text-anchor='middle' "
    b"fill='#6b7280' font-family='-apple-system,BlinkMacSystemFont,Segoe UI,"
    b"Roboto,Helvetica,Arial,sans-serif' font-size='18'>Image unavailable</text>"
    b"</svg>"
)

SUCCESS_CACHE_HEADERS: dict[str, str] = {
    "Cache-Control": "public, max-age=31536000, s-maxage=31536000, immutable",
    "CDN-Cache-Control": "public, max-age=31536000",
}

PLACEHOLDER_CACHE_HEADERS: dict[str, str] = {
    "Cache-Control": "public, max-age=600, s-maxage=600",
}

_USER_AGENT = "Mozilla/5.0 (compatible; NotionmapImageProxy/1.0)"
_DEFAULT_CONTENT_TYPE = "image/jpeg"
# Backoff between asset fetch attempts: 200 ms, 400 ms, ...
_BACKOFF_BASE_SECONDS = 0.1


def _error_response(status: int, message: str) -> AssetResponse:
    return AssetResponse(
        status=status,
        content=json.dumps({"error": message}).encode(),
        content_type="application/json",
    )


class AssetProxy:
    """Fetch assets behind proxy references, refreshing stale signatures once.

    Parameters
    ----------
    config:
        Supplies ``proxy_path``, the allowed host markers, attempt count and
        timeout.
    refresher:
        Used to re-derive a URL after a stale status.  Without one, stale
        assets go straight to the placeholder.
    http_client:
        Optional pre-configured :class:`httpx.Client`.  When omitted the
        proxy creates (and owns) one.
    """

    def __init__(
        self,
        config: NotionmapConfig,
        refresher: AssetRefresher | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._config = config
        self._refresher = refresher
        self._metrics = resolve_metrics(config.metrics)
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            timeout=httpx.Timeout(config.asset_fetch_timeout_seconds),
            follow_redirects=True,
            proxy=config.http_proxy,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fetch(self, reference: str) -> AssetResponse:
        """Resolve *reference* and return the asset (or a placeholder).

        Parameters
        ----------
        reference:
            A full proxy reference, an encoded one, or the bare ``url``
            query value received by the proxy endpoint.

        Returns
        -------
        AssetResponse
            ``400`` for a reference without a usable URL, ``403`` for a host
            outside the allow-list, otherwise ``200`` with either the asset
            bytes or the placeholder SVG.
        """
        if not reference:
            return self._reject(400, "Missing or invalid URL parameter", reference)

        url, metadata = parse_proxy_reference(reference, self._config.proxy_path)
        if not url.lower().startswith(("http://", "https://")):
            return self._reject(400, "Missing or invalid URL parameter", reference)
        if not self._is_allowed(url):
            return self._reject(403, "URL not allowed", url)

        try:
            response, status = self._fetch_with_retries(url)
        except NotionmapStaleAssetError as exc:
            refreshed = self._refresh_and_fetch(url, metadata, exc)
            if refreshed is not None:
                return refreshed
            return self._placeholder(url, exc.context["status_code"])

        if response is not None:
            return self._success(response, refreshed=False)
        return self._placeholder(url, status)

    def close(self) -> None:
        """Close the HTTP client if this proxy created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> AssetProxy:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _is_allowed(self, url: str) -> bool:
        return any(marker in url for marker in self._config.asset_allowed_host_markers)

    def _get(self, url: str) -> httpx.Response:
        return self._client.get(url, headers={"User-Agent": _USER_AGENT})

    def _fetch_with_retries(self, url: str) -> tuple[httpx.Response | None, int | None]:
        """Fetch *url*, retrying 5xx and network failures.

        Returns ``(response, status)`` with *response* set only on success.
        4xx responses are not retried.

        Raises
        ------
        NotionmapStaleAssetError
            If the final status means the signature has expired.
        """
        attempts = self._config.asset_fetch_attempts
        status: int | None = None

        for attempt in range(attempts):
            error: Exception | None = None
            try:
                response = self._get(url)
            except RETRYABLE_EXCEPTIONS as exc:
                error = exc
                status = None
                log.warning(
                    "Asset fetch network error",
                    extra={
                        "extra_fields": {
                            "op": "proxy_asset",
                            "url": mask_presigned_url(url),
                            "attempt": attempt + 1,
                            "error": str(exc),
                        }
                    },
                )
            else:
                status = response.status_code
                if response.is_success:
                    return response, status

            if not should_retry_asset(status, error, attempt, attempts):
                break
            time.sleep(compute_backoff(attempt + 1, base=_BACKOFF_BASE_SECONDS, jitter=False))

        if is_stale_status(status):
            raise NotionmapStaleAssetError(
                f"Asset URL returned {status}",
                context={"status_code": status, "url": mask_presigned_url(url)},
            )
        return None, status

    def _refresh_and_fetch(
        self,
        url: str,
        metadata: ProxyMetadata,
        stale: NotionmapStaleAssetError,
    ) -> AssetResponse | None:
        """Refresh a stale reference once and fetch the fresh URL once."""
        log.info(
            "Stale asset signature",
            extra={
                "extra_fields": {
                    "op": "proxy_asset",
                    "error_code": str(stale.code),
                    "refresh": self._refresher is not None,
                    **stale.context,
                }
            },
        )
        if self._refresher is None:
            return None
        try:
            fresh_url = self._refresher.refresh(metadata)
        except NotionmapAssetNotRecoverableError as exc:
            log.warning(
                "Stale asset could not be refreshed",
                extra={
                    "extra_fields": {
                        "op": "proxy_asset",
                        "url": mask_presigned_url(url),
                        "error_code": str(exc.code),
                    }
                },
            )
            return None

        try:
            response = self._get(fresh_url)
        except RETRYABLE_EXCEPTIONS:
            return None
        if not response.is_success:
            return None
        return self._success(response, refreshed=True)

    def _success(self, response: httpx.Response, refreshed: bool) -> AssetResponse:
        outcome = "refreshed" if refreshed else "ok"
        self._metrics.increment("notionmap.asset_proxy_total", tags={"outcome": outcome})
        return AssetResponse(
            status=200,
            content=response.content,
            content_type=response.headers.get("content-type") or _DEFAULT_CONTENT_TYPE,
            headers=dict(SUCCESS_CACHE_HEADERS),
            refreshed=refreshed,
        )

    def _placeholder(self, url: str, status: int | None) -> AssetResponse:
        self._metrics.increment("notionmap.asset_proxy_total", tags={"outcome": "placeholder"})
        log.error(
            "Asset unavailable, serving placeholder",
            extra={
                "extra_fields": {
                    "op": "proxy_asset",
                    "url": mask_presigned_url(url),
                    "status_code": status,
                }
            },
        )
        return AssetResponse(
            status=200,
            content=PLACEHOLDER_SVG,
            content_type="image/svg+xml",
            headers=dict(PLACEHOLDER_CACHE_HEADERS),
            placeholder=True,
        )

    def _reject(self, status: int, message: str, url: str) -> AssetResponse:
        outcome = "forbidden" if status == 403 else "bad_request"
        self._metrics.increment("notionmap.asset_proxy_total", tags={"outcome": outcome})
        log.warning(
            message,
            extra={
                "extra_fields": {
                    "op": "proxy_asset",
                    "url": mask_presigned_url(url),
                    "status_code": status,
                }
            },
        )
        return _error_response(status, message)
