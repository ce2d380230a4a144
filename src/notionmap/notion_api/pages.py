"""Read access to Notion pages.

A page object is the root of every document (title, icon and cover live
on it) and the fallback source when a stale asset has to be re-signed
from a page property.  :class:`PageAPI` and :class:`AsyncPageAPI` only
build the path; the transport owns auth, pacing and retries.
"""

from __future__ import annotations

from typing import Any

from .transport import AsyncNotionTransport, NotionTransport


def _page_path(page_id: str) -> str:
    return f"/pages/{page_id}"


class PageAPI:
    """Synchronous page reader.

    Parameters
    ----------
    transport:
        The :class:`NotionTransport` requests go through.
    """

    def __init__(self, transport: NotionTransport) -> None:
        self._transport = transport

    def retrieve(self, page_id: str) -> dict[str, Any]:
        """Return the page object for *page_id*.

        Raises :class:`~notionmap.errors.NotionmapNotFoundError` when the
        page is gone or not shared with the integration.
        """
        return self._transport.request("GET", _page_path(page_id))


class AsyncPageAPI:
    """Asynchronous page reader; see :class:`PageAPI`."""

    def __init__(self, transport: AsyncNotionTransport) -> None:
        self._transport = transport

    async def retrieve(self, page_id: str) -> dict[str, Any]:
        return await self._transport.request("GET", _page_path(page_id))
