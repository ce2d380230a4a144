"""Re-derive fresh asset URLs for stale proxy references.

A proxy reference built by :class:`~notionmap.assets.urls.AssetURLRewriter`
carries the ids needed to ask Notion for the asset again.  Notion re-signs
file URLs on every read, so retrieving the owning block (or page) yields a
URL that is valid for another hour.

Resolution order:

1. With a ``block_id``: retrieve the block and read ``file.url``,
   ``external.url``, the first entry of a file list, or a callout's icon.
2. Otherwise, or when step 1 yields nothing: with a ``page_id``, retrieve
   the page and read the named property (a ``files``/``url`` property, or
   the ``cover``/``icon`` pseudo-properties), falling back to the cover.

Anything else raises :class:`NotionmapAssetNotRecoverableError`.
"""

from __future__ import annotations

from typing import Any

from notionmap.errors import NotionmapAssetNotRecoverableError, NotionmapError
from notionmap.models import ProxyMetadata
from notionmap.notion_api.blocks import AsyncBlockAPI, BlockAPI
from notionmap.notion_api.pages import AsyncPageAPI, PageAPI
from notionmap.observability import get_logger, resolve_metrics

log = get_logger("notionmap.assets.refresh")

STALE_STATUSES: frozenset[int] = frozenset({401, 403, 404, 410})
"""HTTP statuses that mark a previously working asset URL as expired."""


def is_stale_status(status: int | None) -> bool:
    """Return ``True`` if *status* indicates an expired asset reference."""
    return status in STALE_STATUSES


# ---------------------------------------------------------------------------
# URL extraction
# ---------------------------------------------------------------------------

def _file_url(obj: Any) -> str | None:
    if not isinstance(obj, dict):
        return None
    for key in ("file", "external"):
        inner = obj.get(key)
        if isinstance(inner, dict) and isinstance(inner.get("url"), str) and inner["url"]:
            return inner["url"]
    return None


def url_from_block(block: Any) -> str | None:
    """Extract the asset URL carried by a block object, if any."""
    if not isinstance(block, dict):
        return None
    block_type = block.get("type")
    data = block.get(block_type) if isinstance(block_type, str) else None
    if not isinstance(data, dict):
        return None

    url = _file_url(data)
    if url:
        return url

    files = data.get("file")
    if isinstance(files, list) and files:
        first = files[0]
        if isinstance(first, dict) and isinstance(first.get("url"), str) and first["url"]:
            return first["url"]

    return _file_url(data.get("icon"))


def url_from_page(page: Any, property_name: str | None = None) -> str | None:
    """Extract an asset URL from a page object.

    *property_name* selects a ``files`` or ``url`` property, or one of the
    ``"cover"`` / ``"icon"`` pseudo-properties.  The cover is the fallback.
    """
    if not isinstance(page, dict):
        return None

    if property_name == "icon":
        url = _file_url(page.get("icon"))
        if url:
            return url
    elif property_name and property_name != "cover":
        properties = page.get("properties")
        prop = properties.get(property_name) if isinstance(properties, dict) else None
        if isinstance(prop, dict):
            if prop.get("type") == "url" and isinstance(prop.get("url"), str) and prop["url"]:
                return prop["url"]
            for item in prop.get("files") or []:
                url = _file_url(item)
                if url:
                    return url

    return _file_url(page.get("cover"))


# ---------------------------------------------------------------------------
# Refreshers
# ---------------------------------------------------------------------------

class _BaseRefresher:
    """Outcome bookkeeping shared by the sync and async refreshers."""

    def __init__(self, metrics: Any | None = None) -> None:
        self._metrics = resolve_metrics(metrics)

    def _check(self, metadata: ProxyMetadata) -> None:
        if not metadata.block_id and not metadata.page_id:
            self._metrics.increment(
                "notionmap.asset_refresh_total", tags={"outcome": "unrecoverable"},
            )
            raise NotionmapAssetNotRecoverableError(
                message="Asset reference carries neither a block id nor a page id",
                context={"property": metadata.property},
            )

    def _succeeded(self, metadata: ProxyMetadata, via: str) -> None:
        self._metrics.increment(
            "notionmap.asset_refresh_total", tags={"outcome": "refreshed", "via": via},
        )
        log.info(
            "Asset URL refreshed",
            extra={
                "extra_fields": {
                    "op": "refresh_asset",
                    "via": via,
                    "page_id": metadata.page_id,
                    "block_id": metadata.block_id,
                    "property": metadata.property,
                }
            },
        )

    def _block_failed(self, metadata: ProxyMetadata, exc: NotionmapError) -> None:
        """Record a failed block lookup; raise unless the page path remains."""
        log.warning(
            "Block lookup failed during asset refresh",
            extra={
                "extra_fields": {
                    "op": "refresh_asset",
                    "block_id": metadata.block_id,
                    "error_code": str(exc.code),
                }
            },
        )
        if not metadata.page_id:
            raise self._unrecoverable(metadata, exc) from exc

    def _unrecoverable(
        self,
        metadata: ProxyMetadata,
        cause: Exception | None = None,
    ) -> NotionmapAssetNotRecoverableError:
        self._metrics.increment(
            "notionmap.asset_refresh_total", tags={"outcome": "unrecoverable"},
        )
        return NotionmapAssetNotRecoverableError(
            message="No fresh URL could be derived for the asset reference",
            context={
                "page_id": metadata.page_id,
                "block_id": metadata.block_id,
                "property": metadata.property,
            },
            cause=cause,
        )


class AssetRefresher(_BaseRefresher):
    """Resolve :class:`ProxyMetadata` into a freshly signed URL.

    Parameters
    ----------
    blocks:
        Block API used for block-owned assets.
    pages:
        Page API used for covers, icons and ``files`` properties.
    metrics:
        Optional :class:`~notionmap.observability.MetricsHook`.
    """

    def __init__(self, blocks: BlockAPI, pages: PageAPI, metrics: Any | None = None) -> None:
        super().__init__(metrics)
        self._blocks = blocks
        self._pages = pages

    def refresh(self, metadata: ProxyMetadata) -> str:
        """Return a fresh URL for the asset described by *metadata*.

        Raises
        ------
        NotionmapAssetNotRecoverableError
            If neither id is present, the upstream lookups fail, or the
            retrieved objects carry no URL.
        """
        self._check(metadata)

        if metadata.block_id:
            try:
                url = url_from_block(self._blocks.retrieve(metadata.block_id))
            except NotionmapError as exc:
                self._block_failed(metadata, exc)
                url = None
            if url:
                self._succeeded(metadata, "block")
                return url

        if metadata.page_id:
            try:
                page = self._pages.retrieve(metadata.page_id)
            except NotionmapError as exc:
                raise self._unrecoverable(metadata, exc) from exc
            url = url_from_page(page, metadata.property)
            if url:
                self._succeeded(metadata, "page")
                return url

        raise self._unrecoverable(metadata)


class AsyncAssetRefresher(_BaseRefresher):
    """Async twin of :class:`AssetRefresher`."""

    def __init__(
        self,
        blocks: AsyncBlockAPI,
        pages: AsyncPageAPI,
        metrics: Any | None = None,
    ) -> None:
        super().__init__(metrics)
        self._blocks = blocks
        self._pages = pages

    async def refresh(self, metadata: ProxyMetadata) -> str:
        """Return a fresh URL for the asset described by *metadata*."""
        self._check(metadata)

        if metadata.block_id:
            try:
                url = url_from_block(await self._blocks.retrieve(metadata.block_id))
            except NotionmapError as exc:
                self._block_failed(metadata, exc)
                url = None
            if url:
                self._succeeded(metadata, "block")
                return url

        if metadata.page_id:
            try:
                page = await self._pages.retrieve(metadata.page_id)
            except NotionmapError as exc:
                raise self._unrecoverable(metadata, exc) from exc
            url = url_from_page(page, metadata.property)
            if url:
                self._succeeded(metadata, "page")
                return url

        raise self._unrecoverable(metadata)
