"""Configuration for notionmap.

:class:`NotionmapConfig` captures every tuneable knob of the pipeline:
transport behaviour, tree-fetch limits, asset URL rewriting, and the
optimizer's set of transparent node kinds.  Instances are shared by
:class:`NotionmapClient` and :class:`AsyncNotionmapClient`.

Three module-level constants define the default asset host rules:

* :data:`DEFAULT_FRAGILE_DOMAINS` -- storage domains that hand out
  presigned, expiring URLs.
* :data:`DEFAULT_STABLE_HOSTS` -- third-party image hosts whose URLs never
  expire and are never proxied.
* :data:`DEFAULT_ALLOWED_HOST_MARKERS` -- substrings a URL must contain to
  be fetched through :class:`~notionmap.assets.proxy.AssetProxy`.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Asset host constants
# ---------------------------------------------------------------------------

DEFAULT_FRAGILE_DOMAINS: tuple[str, ...] = ("amazonaws.com",)
"""Host suffixes of storage services that issue expiring signed URLs."""

DEFAULT_STABLE_HOSTS: tuple[str, ...] = ("images.unsplash.com",)
"""Hosts whose URLs are served as-is and never rewritten."""

DEFAULT_ALLOWED_HOST_MARKERS: tuple[str, ...] = ("amazonaws.com", "notion")
"""A proxied URL must contain one of these markers to be fetched."""

DEFAULT_TRANSPARENT_KINDS: frozenset[str] = frozenset({
    "transclusion_container",
    "transclusion_reference",
    "breadcrumb",
    "table_of_contents",
})
"""Node kinds the renderer cannot display; the optimizer splices their
children into the parent."""


# ---------------------------------------------------------------------------
# Configuration dataclass
# ---------------------------------------------------------------------------

@dataclass
class NotionmapConfig:
    """Complete configuration for a notionmap client.

    Every parameter has a sensible default so that the only *required*
    value is ``token``.

    Parameters
    ----------
    token:
        Notion integration token.  **Required.**  Never logged.
    notion_version:
        Value of the ``Notion-Version`` header sent with every request.
    base_url:
        API root URL.  Override for proxy or testing environments.
    retry_max_attempts:
        Maximum number of attempts per HTTP request for retryable errors
        (429, 5xx, network failures).
    retry_base_delay:
        Base delay (seconds) for the transport's exponential backoff.
    retry_max_delay:
        Upper cap (seconds) on any computed backoff delay.
    retry_jitter:
        Add random jitter to backoff intervals.
    rate_limit_rps:
        Target requests per second for client-side pacing (token bucket).
    timeout_seconds:
        HTTP request timeout in seconds.
    http_proxy:
        Optional HTTP/HTTPS proxy URL.
    max_blocks:
        Safety cap on the number of nodes (root included) fetched for one
        document.  When reached the map is returned truncated.
    fetch_retry_attempts:
        Attempts per tree-fetch call (root retrieve, each children page)
        when the transport gives up with a transient error.  Exhausting them
        abandons that subtree.
    fetch_retry_base_delay:
        Base delay (seconds) for the tree-fetch backoff.
    page_size:
        ``page_size`` sent with every children listing.
    rewrite_assets:
        Rewrite fragile asset URLs into image-proxy references.
    site_url:
        Optional absolute origin prefixed to every proxy reference, e.g.
        ``"https://blog.example.com"``.  Empty yields relative references.
    proxy_path:
        Path of the image-proxy endpoint.
    asset_fragile_domains:
        Host suffixes treated as expiring-signature storage.
    asset_stable_hosts:
        Hosts never rewritten.
    asset_allowed_host_markers:
        Substrings a URL must contain to be fetched by the asset proxy.
    asset_fetch_attempts:
        Attempts per asset fetch in the asset proxy.
    asset_fetch_timeout_seconds:
        Timeout for a single asset fetch.
    transparent_kinds:
        Node kinds flattened away by the optimizer.
    cache_ttl_seconds:
        Time-to-live of entries in the default in-memory result cache.
    """

    # ── Core ────────────────────────────────────────────────────────────
    token: str = ""

    notion_version: str = "2025-09-03"

    base_url: str = "https://api.notion.com/v1"

    # ── Retry & rate ────────────────────────────────────────────────────
    retry_max_attempts: int = 5

    retry_base_delay: float = 1.0

    retry_max_delay: float = 60.0

    retry_jitter: bool = True

    rate_limit_rps: float = 3.0

    # ── HTTP ────────────────────────────────────────────────────────────
    timeout_seconds: float = 30.0

    http_proxy: str | None = None

    # ── Tree fetch ──────────────────────────────────────────────────────
    max_blocks: int = 1000

    fetch_retry_attempts: int = 3

    fetch_retry_base_delay: float = 1.5

    page_size: int = 100

    # ── Assets ──────────────────────────────────────────────────────────
    rewrite_assets: bool = True

    site_url: str = ""

    proxy_path: str = "/api/image-proxy"

    asset_fragile_domains: tuple[str, ...] = DEFAULT_FRAGILE_DOMAINS

    asset_stable_hosts: tuple[str, ...] = DEFAULT_STABLE_HOSTS

    asset_allowed_host_markers: tuple[str, ...] = DEFAULT_ALLOWED_HOST_MARKERS

    asset_fetch_attempts: int = 3

    asset_fetch_timeout_seconds: float = 15.0

    # ── Optimizer ───────────────────────────────────────────────────────
    transparent_kinds: frozenset[str] = field(
        default_factory=lambda: DEFAULT_TRANSPARENT_KINDS,
    )

    # ── Cache ───────────────────────────────────────────────────────────
    cache_ttl_seconds: float = 600.0

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    # ── Debug ───────────────────────────────────────────────────────────
    debug_dump_payload: bool = False

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        from urllib.parse import urlparse

        parsed = urlparse(self.base_url)
        if parsed.scheme == "http" and parsed.hostname not in (
            "localhost",
            "127.0.0.1",
            "::1",
        ):
            raise ValueError(
                f"base_url uses insecure HTTP for non-local host '{parsed.hostname}'. "
                "Use HTTPS to protect your API token, or target localhost for testing."
            )

        self.site_url = self.site_url.rstrip("/")
        if not self.proxy_path.startswith("/"):
            raise ValueError(f"proxy_path must start with '/', got {self.proxy_path!r}")

        if self.retry_max_attempts < 1:
            raise ValueError(f"retry_max_attempts must be >= 1, got {self.retry_max_attempts}")
        if self.retry_base_delay < 0:
            raise ValueError(f"retry_base_delay must be >= 0, got {self.retry_base_delay}")
        if self.retry_max_delay < 0:
            raise ValueError(f"retry_max_delay must be >= 0, got {self.retry_max_delay}")
        if self.rate_limit_rps <= 0:
            raise ValueError(f"rate_limit_rps must be > 0, got {self.rate_limit_rps}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")
        if self.max_blocks < 1:
            raise ValueError(f"max_blocks must be >= 1, got {self.max_blocks}")
        if self.fetch_retry_attempts < 1:
            raise ValueError(
                f"fetch_retry_attempts must be >= 1, got {self.fetch_retry_attempts}"
            )
        if self.fetch_retry_base_delay < 0:
            raise ValueError(
                f"fetch_retry_base_delay must be >= 0, got {self.fetch_retry_base_delay}"
            )
        if not 1 <= self.page_size <= 100:
            raise ValueError(f"page_size must be between 1 and 100, got {self.page_size}")
        if self.asset_fetch_attempts < 1:
            raise ValueError(
                f"asset_fetch_attempts must be >= 1, got {self.asset_fetch_attempts}"
            )
        if self.cache_ttl_seconds < 0:
            raise ValueError(f"cache_ttl_seconds must be >= 0, got {self.cache_ttl_seconds}")

    @classmethod
    def from_env(cls, **overrides: Any) -> NotionmapConfig:
        """Build a config from ``NOTION_TOKEN`` and ``NOTIONMAP_SITE_URL``.

        Explicit keyword *overrides* win over environment values.
        """
        values: dict[str, Any] = {
            "token": os.environ.get("NOTION_TOKEN", ""),
            "site_url": os.environ.get("NOTIONMAP_SITE_URL", ""),
        }
        values.update(overrides)
        return cls(**values)

    def __repr__(self) -> str:
        """Mask the token to prevent accidental credential leakage."""
        parts: list[str] = []
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if f.name == "token":
                masked = f"...{val[-4:]}" if len(val) >= 4 else "****"
                parts.append(f"token='{masked}'")
            else:
                parts.append(f"{f.name}={val!r}")
        return f"NotionmapConfig({', '.join(parts)})"
