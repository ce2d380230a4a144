"""Data source query wrappers for the Notion API.

A database's rows are listed through ``POST /data_sources/{id}/query``.
The cursor travels in the JSON body rather than the query string.
"""

from __future__ import annotations

from typing import Any

from notionmap.models import ChildrenPage

from .blocks import to_children_page
from .transport import AsyncNotionTransport, NotionTransport


def _query_body(start_cursor: str | None, page_size: int) -> dict[str, Any]:
    body: dict[str, Any] = {"page_size": page_size}
    if start_cursor:
        body["start_cursor"] = start_cursor
    return body


class DatabaseAPI:
    """Synchronous wrapper for data source queries.

    Parameters
    ----------
    transport:
        A configured :class:`NotionTransport` instance.
    page_size:
        ``page_size`` sent with every query.
    """

    def __init__(self, transport: NotionTransport, page_size: int = 100) -> None:
        self._transport = transport
        self._page_size = page_size

    def query(
        self,
        data_source_id: str,
        start_cursor: str | None = None,
    ) -> ChildrenPage:
        """Return one page of rows (page objects) of a data source."""
        response = self._transport.request(
            "POST",
            f"/data_sources/{data_source_id}/query",
            json=_query_body(start_cursor, self._page_size),
        )
        return to_children_page(response)

    def query_all(self, data_source_id: str) -> list[dict[str, Any]]:
        """Return every row of a data source, auto-paginating."""
        return list(
            self._transport.paginate(
                f"/data_sources/{data_source_id}/query",
                method="POST",
            )
        )


class AsyncDatabaseAPI:
    """Asynchronous wrapper for data source queries."""

    def __init__(self, transport: AsyncNotionTransport, page_size: int = 100) -> None:
        self._transport = transport
        self._page_size = page_size

    async def query(
        self,
        data_source_id: str,
        start_cursor: str | None = None,
    ) -> ChildrenPage:
        """Return one page of rows (page objects) of a data source."""
        response = await self._transport.request(
            "POST",
            f"/data_sources/{data_source_id}/query",
            json=_query_body(start_cursor, self._page_size),
        )
        return to_children_page(response)

    async def query_all(self, data_source_id: str) -> list[dict[str, Any]]:
        """Return every row of a data source, auto-paginating."""
        rows: list[dict[str, Any]] = []
        async for item in self._transport.paginate(
            f"/data_sources/{data_source_id}/query",
            method="POST",
        ):
            rows.append(item)
        return rows
