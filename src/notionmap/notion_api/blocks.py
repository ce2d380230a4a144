"""Block API wrappers for the Notion API.

Provides :class:`BlockAPI` (sync) and :class:`AsyncBlockAPI` (async) thin
wrappers around the read side of the ``/blocks`` endpoints.
:meth:`BlockAPI.list_children` returns one cursor page at a time so that the
tree fetcher can retry each page on its own.
"""

from __future__ import annotations

from typing import Any

from notionmap.models import ChildrenPage

from .transport import AsyncNotionTransport, NotionTransport


def to_children_page(response: dict[str, Any]) -> ChildrenPage:
    """Convert a paginated list response into a :class:`ChildrenPage`.

    ``next_cursor`` is only kept while ``has_more`` is true, so a drained
    listing always ends with ``None``.
    """
    results = response.get("results") or []
    cursor = response.get("next_cursor") if response.get("has_more") else None
    return ChildrenPage(items=list(results), next_cursor=cursor or None)


def _children_params(start_cursor: str | None, page_size: int) -> dict[str, Any]:
    params: dict[str, Any] = {"page_size": page_size}
    if start_cursor:
        params["start_cursor"] = start_cursor
    return params


class BlockAPI:
    """Synchronous wrapper for the Notion Blocks API.

    Parameters
    ----------
    transport:
        A configured :class:`NotionTransport` instance.
    page_size:
        ``page_size`` sent with every children listing.
    """

    def __init__(self, transport: NotionTransport, page_size: int = 100) -> None:
        self._transport = transport
        self._page_size = page_size

    def retrieve(self, block_id: str) -> dict[str, Any]:
        """Retrieve a single block by its ID.

        Parameters
        ----------
        block_id:
            The UUID of the block to retrieve.

        Returns
        -------
        dict
            The full block object.
        """
        return self._transport.request("GET", f"/blocks/{block_id}")

    def list_children(
        self,
        block_id: str,
        start_cursor: str | None = None,
    ) -> ChildrenPage:
        """Retrieve one page of a block's children.

        Parameters
        ----------
        block_id:
            The UUID of the parent block (or page).
        start_cursor:
            Cursor returned by the previous page, or ``None`` for the first.

        Returns
        -------
        ChildrenPage
            The children on this page and the cursor of the next one.
        """
        response = self._transport.request(
            "GET",
            f"/blocks/{block_id}/children",
            params=_children_params(start_cursor, self._page_size),
        )
        return to_children_page(response)


class AsyncBlockAPI:
    """Asynchronous wrapper for the Notion Blocks API.

    Parameters
    ----------
    transport:
        A configured :class:`AsyncNotionTransport` instance.
    page_size:
        ``page_size`` sent with every children listing.
    """

    def __init__(self, transport: AsyncNotionTransport, page_size: int = 100) -> None:
        self._transport = transport
        self._page_size = page_size

    async def retrieve(self, block_id: str) -> dict[str, Any]:
        """Retrieve a single block by its ID."""
        return await self._transport.request("GET", f"/blocks/{block_id}")

    async def list_children(
        self,
        block_id: str,
        start_cursor: str | None = None,
    ) -> ChildrenPage:
        """Retrieve one page of a block's children."""
        response = await self._transport.request(
            "GET",
            f"/blocks/{block_id}/children",
            params=_children_params(start_cursor, self._page_size),
        )
        return to_children_page(response)
