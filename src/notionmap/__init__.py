"""notionmap -- Notion pages as flat, renderable record maps.

Public re-exports
-----------------

* **Clients:** :class:`NotionmapClient`, :class:`AsyncNotionmapClient`
* **Configuration:** :class:`NotionmapConfig`
* **Errors:** Every :class:`NotionmapError` subclass and :class:`ErrorCode`
* **Models:** Document, asset and pagination dataclasses
* **Pipeline pieces:** :class:`BlockNormalizer`, :class:`AssetURLRewriter`,
  :func:`optimize_document`, :func:`transcode_rich_text`

Usage::

    from notionmap import NotionmapClient

    client = NotionmapClient(token="secret_xxx")
    doc = client.optimize(client.fetch_document("<page_id>"))
"""

from __future__ import annotations

from notionmap.assets import (
    AssetProxy,
    AssetRefresher,
    AssetURLRewriter,
    AsyncAssetRefresher,
    is_stale_status,
    unwrap_proxied_url,
)
from notionmap.async_client import AsyncNotionmapClient

# ── Clients ────────────────────────────────────────────────────────────
from notionmap.client import NotionmapClient

# ── Configuration ───────────────────────────────────────────────────────
from notionmap.cache import MemoryCache, ResultCache
from notionmap.config import (
    DEFAULT_ALLOWED_HOST_MARKERS,
    DEFAULT_FRAGILE_DOMAINS,
    DEFAULT_STABLE_HOSTS,
    DEFAULT_TRANSPARENT_KINDS,
    NotionmapConfig,
)
from notionmap.converter import BlockNormalizer, transcode_rich_text

# ── Errors ──────────────────────────────────────────────────────────────
from notionmap.errors import (
    TRANSIENT_ERRORS,
    ErrorCode,
    NotionmapAssetError,
    NotionmapAssetNotRecoverableError,
    NotionmapAuthError,
    NotionmapError,
    NotionmapMalformedBlockError,
    NotionmapNetworkError,
    NotionmapNotFoundError,
    NotionmapPermissionError,
    NotionmapRetryExhaustedError,
    NotionmapStaleAssetError,
    NotionmapValidationError,
)
from notionmap.fetcher import AsyncTreeFetcher, TreeFetcher

# ── Models ──────────────────────────────────────────────────────────────
from notionmap.models import (
    AssetResponse,
    BlockKind,
    ChildrenPage,
    DocumentMap,
    DocumentNode,
    FetchWarning,
    ProxyMetadata,
)
from notionmap.optimizer import optimize_document

# ── Public surface ──────────────────────────────────────────────────────

__all__ = [
    # Clients
    "NotionmapClient",
    "AsyncNotionmapClient",
    # Configuration
    "NotionmapConfig",
    "DEFAULT_FRAGILE_DOMAINS",
    "DEFAULT_STABLE_HOSTS",
    "DEFAULT_ALLOWED_HOST_MARKERS",
    "DEFAULT_TRANSPARENT_KINDS",
    # Error base + code enum
    "NotionmapError",
    "ErrorCode",
    "TRANSIENT_ERRORS",
    # API / transport errors
    "NotionmapValidationError",
    "NotionmapAuthError",
    "NotionmapPermissionError",
    "NotionmapNotFoundError",
    "NotionmapRetryExhaustedError",
    "NotionmapNetworkError",
    # Pipeline errors
    "NotionmapMalformedBlockError",
    # Asset errors
    "NotionmapAssetError",
    "NotionmapStaleAssetError",
    "NotionmapAssetNotRecoverableError",
    # Models
    "BlockKind",
    "DocumentNode",
    "DocumentMap",
    "FetchWarning",
    "ProxyMetadata",
    "AssetResponse",
    "ChildrenPage",
    # Pipeline
    "BlockNormalizer",
    "TreeFetcher",
    "AsyncTreeFetcher",
    "AssetURLRewriter",
    "AssetRefresher",
    "AsyncAssetRefresher",
    "AssetProxy",
    "MemoryCache",
    "ResultCache",
    "optimize_document",
    "transcode_rich_text",
    "unwrap_proxied_url",
    "is_stale_status",
]
