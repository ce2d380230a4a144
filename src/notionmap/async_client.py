"""Asynchronous notionmap client.

:class:`AsyncNotionmapClient` mirrors :class:`NotionmapClient` but every
I/O method is an ``async def`` coroutine.  It uses the async variants of the
transport, API wrappers, fetcher and refresher.

Usage::

    import asyncio
    from notionmap import AsyncNotionmapClient

    async def main():
        async with AsyncNotionmapClient(token="secret_xxx") as client:
            docs = await asyncio.gather(
                client.fetch_document("<page_a>"),
                client.fetch_document("<page_b>"),
            )

    asyncio.run(main())
"""

from __future__ import annotations

import copy
from typing import Any

from notionmap.assets.refresh import AsyncAssetRefresher
from notionmap.assets.urls import AssetURLRewriter
from notionmap.cache import MemoryCache, ResultCache
from notionmap.client import document_cache_key, normalize_rows, to_metadata
from notionmap.config import NotionmapConfig
from notionmap.converter.normalizer import BlockNormalizer
from notionmap.errors import NotionmapAssetNotRecoverableError
from notionmap.fetcher import AsyncTreeFetcher
from notionmap.models import DocumentMap, DocumentNode, ProxyMetadata
from notionmap.notion_api.blocks import AsyncBlockAPI
from notionmap.notion_api.databases import AsyncDatabaseAPI
from notionmap.notion_api.pages import AsyncPageAPI
from notionmap.notion_api.transport import AsyncNotionTransport
from notionmap.observability import get_logger
from notionmap.optimizer import optimize_document

log = get_logger("notionmap.async_client")


class AsyncNotionmapClient:
    """Asynchronous notionmap client.

    Parameters
    ----------
    token:
        Notion integration token.  Ignored when *config* is given.
    config:
        A ready-made :class:`NotionmapConfig`.
    cache:
        Document cache.  Defaults to a :class:`MemoryCache`.
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
        self._transport = AsyncNotionTransport(self._config)
        self._pages = AsyncPageAPI(self._transport)
        self._blocks = AsyncBlockAPI(self._transport, page_size=self._config.page_size)
        self._databases = AsyncDatabaseAPI(self._transport, page_size=self._config.page_size)
        self._rewriter = AssetURLRewriter(self._config)
        self._normalizer = BlockNormalizer(self._config, self._rewriter)
        self._fetcher = AsyncTreeFetcher(self._blocks, self._pages, self._normalizer, self._config)
        self._refresher = AsyncAssetRefresher(self._blocks, self._pages, self._config.metrics)
        self._cache: ResultCache = (
            cache if cache is not None else MemoryCache(self._config.cache_ttl_seconds)
        )

    @property
    def config(self) -> NotionmapConfig:
        return self._config

    @property
    def rewriter(self) -> AssetURLRewriter:
        return self._rewriter

    async def fetch_document(self, root_id: str, use_cache: bool = True) -> DocumentMap | None:
        """Fetch the page *root_id* and its block tree.

        See :meth:`NotionmapClient.fetch_document`.
        """
        key = document_cache_key(root_id)
        if use_cache:
            cached = self._cache.get(key)
            if cached is not None:
                return copy.deepcopy(cached)

        doc = await self._fetcher.fetch(root_id)
        if doc is not None and use_cache:
            self._cache.set(key, copy.deepcopy(doc))
        return doc

    def optimize(self, doc: DocumentMap | None) -> DocumentMap | None:
        """Return an optimised copy of *doc*.  Pure; no I/O."""
        return optimize_document(doc, self._config.transparent_kinds)

    async def query_database(self, data_source_id: str) -> list[DocumentNode]:
        """Return every row of a data source as a page node."""
        rows = await self._databases.query_all(data_source_id)
        return normalize_rows(self._normalizer, rows)

    async def refresh_asset(self, reference: ProxyMetadata | str) -> str | None:
        """Return a fresh URL for a stale asset, or ``None`` if unrecoverable."""
        metadata = to_metadata(reference, self._config.proxy_path)
        try:
            return await self._refresher.refresh(metadata)
        except NotionmapAssetNotRecoverableError as exc:
            log.warning(
                "Asset refresh failed",
                extra={"extra_fields": {"op": "refresh_asset", **exc.context}},
            )
            return None

    # ------------------------------------------------------------------
    # Resource management
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP transport."""
        await self._transport.close()

    async def __aenter__(self) -> AsyncNotionmapClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
