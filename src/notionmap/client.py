"""Synchronous notionmap client.

:class:`NotionmapClient` wires the transport, API wrappers, normalizer,
tree fetcher, refresher and asset proxy together behind a small facade.

Usage::

    from notionmap import NotionmapClient

    with NotionmapClient(token="secret_xxx", site_url="https://blog.example.com") as client:
        doc = client.fetch_document("<page_id>")
        if doc is not None:
            record_map = client.optimize(doc).to_record_map()
"""

from __future__ import annotations

import copy
from typing import Any

from notionmap.assets.proxy import AssetProxy
from notionmap.assets.refresh import AssetRefresher
from notionmap.assets.urls import AssetURLRewriter, parse_proxy_reference
from notionmap.cache import MemoryCache, ResultCache
from notionmap.config import NotionmapConfig
from notionmap.converter.normalizer import BlockNormalizer
from notionmap.errors import NotionmapAssetNotRecoverableError, NotionmapMalformedBlockError
from notionmap.fetcher import TreeFetcher
from notionmap.models import AssetResponse, DocumentMap, DocumentNode, ProxyMetadata
from notionmap.notion_api.blocks import BlockAPI
from notionmap.notion_api.databases import DatabaseAPI
from notionmap.notion_api.pages import PageAPI
from notionmap.notion_api.transport import NotionTransport
from notionmap.observability import get_logger
from notionmap.optimizer import optimize_document

log = get_logger("notionmap.client")


def document_cache_key(root_id: str) -> str:
    """Cache key under which a document rooted at *root_id* is stored."""
    return f"document:{root_id}"


def to_metadata(reference: ProxyMetadata | str, proxy_path: str) -> ProxyMetadata:
    """Accept either metadata or a proxy reference string."""
    if isinstance(reference, ProxyMetadata):
        return reference
    _, metadata = parse_proxy_reference(reference, proxy_path)
    return metadata


def normalize_rows(normalizer: BlockNormalizer, rows: list[dict[str, Any]]) -> list[DocumentNode]:
    """Normalise database rows, skipping malformed ones."""
    nodes: list[DocumentNode] = []
    for row in rows:
        try:
            nodes.append(normalizer.normalize_page(row))
        except NotionmapMalformedBlockError as exc:
            log.warning(
                "Skipping malformed database row",
                extra={"extra_fields": {"op": "query_database", **exc.context}},
            )
    return nodes


class NotionmapClient:
    """Synchronous notionmap client.

    Parameters
    ----------
    token:
        Notion integration token.  Ignored when *config* is given.
    config:
        A ready-made :class:`NotionmapConfig`.
    cache:
        Document cache.  Defaults to a :class:`MemoryCache` with
        ``config.cache_ttl_seconds``.
    **kwargs:
        Forwarded to :class:`NotionmapConfig` when *config* is omitted.
    """

    def __init__(
        self,
        token: str = "",
        *,
        config: NotionmapConfig | None = None,
        cache: ResultCache | None = None,
        **kwargs: Any,
    ) -> None:
        self._config = config or NotionmapConfig(token=token, **kwargs)
        self._transport = NotionTransport(self._config)
        self._pages = PageAPI(self._transport)
        self._blocks = BlockAPI(self._transport, page_size=self._config.page_size)
        self._databases = DatabaseAPI(self._transport, page_size=self._config.page_size)
        self._rewriter = AssetURLRewriter(self._config)
        self._normalizer = BlockNormalizer(self._config, self._rewriter)
        self._fetcher = TreeFetcher(self._blocks, self._pages, self._normalizer, self._config)
        self._refresher = AssetRefresher(self._blocks, self._pages, self._config.metrics)
        self._cache: ResultCache = (
            cache if cache is not None else MemoryCache(self._config.cache_ttl_seconds)
        )
        self._proxy: AssetProxy | None = None

    @property
    def config(self) -> NotionmapConfig:
        return self._config

    @property
    def rewriter(self) -> AssetURLRewriter:
        return self._rewriter

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def fetch_document(self, root_id: str, use_cache: bool = True) -> DocumentMap | None:
        """Fetch the page *root_id* and its block tree.

        Parameters
        ----------
        root_id:
            The Notion page ID.
        use_cache:
            Read from and write to the result cache.  The cache holds its
            own copy and every hit returns a fresh one, so callers may
            mutate the result freely.

        Returns
        -------
        DocumentMap or None
            ``None`` when the root page is missing or unreachable.  Such
            results are never cached.
        """
        key = document_cache_key(root_id)
        if use_cache:
            cached = self._cache.get(key)
            if cached is not None:
                return copy.deepcopy(cached)

        doc = self._fetcher.fetch(root_id)
        if doc is not None and use_cache:
            self._cache.set(key, copy.deepcopy(doc))
        return doc

    def optimize(self, doc: DocumentMap | None) -> DocumentMap | None:
        """Return an optimised copy of *doc* (see :func:`optimize_document`)."""
        return optimize_document(doc, self._config.transparent_kinds)

    def query_database(self, data_source_id: str) -> list[DocumentNode]:
        """Return every row of a data source as a page node."""
        return normalize_rows(self._normalizer, self._databases.query_all(data_source_id))

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def refresh_asset(self, reference: ProxyMetadata | str) -> str | None:
        """Return a fresh URL for a stale asset, or ``None`` if unrecoverable.

        *reference* is either :class:`ProxyMetadata` or a proxy reference
        string built by :meth:`AssetURLRewriter.rewrite`.
        """
        metadata = to_metadata(reference, self._config.proxy_path)
        try:
            return self._refresher.refresh(metadata)
        except NotionmapAssetNotRecoverableError as exc:
            log.warning(
                "Asset refresh failed",
                extra={"extra_fields": {"op": "refresh_asset", **exc.context}},
            )
            return None

    def proxy_asset(self, reference: str) -> AssetResponse:
        """Fetch the asset behind a proxy reference (see :class:`AssetProxy`)."""
        if self._proxy is None:
            self._proxy = AssetProxy(self._config, self._refresher)
        return self._proxy.fetch(reference)

    # ------------------------------------------------------------------
    # Resource management
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the HTTP transport and the asset proxy client."""
        self._transport.close()
        if self._proxy is not None:
            self._proxy.close()

    def __enter__(self) -> NotionmapClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
