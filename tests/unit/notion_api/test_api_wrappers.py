"""Tests for the page, block and data source wrappers over a mocked transport."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from notionmap.models import ChildrenPage
from notionmap.notion_api.blocks import AsyncBlockAPI, BlockAPI, to_children_page
from notionmap.notion_api.databases import AsyncDatabaseAPI, DatabaseAPI
from notionmap.notion_api.pages import AsyncPageAPI, PageAPI


def _listing(ids, cursor=None, has_more=False):
    return {
        "object": "list",
        "results": [{"object": "block", "id": i} for i in ids],
        "next_cursor": cursor,
        "has_more": has_more,
    }


def _async_items(items):
    async def gen(*args, **kwargs):
        for item in items:
            yield item

    return MagicMock(side_effect=gen)


# ---------------------------------------------------------------------------
# to_children_page
# ---------------------------------------------------------------------------


class TestToChildrenPage:
    def test_cursor_kept_while_more(self):
        page = to_children_page(_listing(["a", "b"], cursor="c2", has_more=True))
        assert page == ChildrenPage(items=[{"object": "block", "id": "a"}, {"object": "block", "id": "b"}], next_cursor="c2")

    def test_cursor_dropped_when_drained(self):
        page = to_children_page(_listing(["a"], cursor="stale", has_more=False))
        assert page.next_cursor is None

    def test_empty_cursor_normalised(self):
        assert to_children_page(_listing([], cursor="", has_more=True)).next_cursor is None

    def test_missing_results(self):
        assert to_children_page({}).items == []


# ---------------------------------------------------------------------------
# Sync wrappers
# ---------------------------------------------------------------------------


class TestBlockAPI:
    def test_retrieve(self):
        transport = MagicMock()
        transport.request.return_value = {"object": "block", "id": "b1"}
        assert BlockAPI(transport).retrieve("b1")["id"] == "b1"
        transport.request.assert_called_once_with("GET", "/blocks/b1")

    def test_list_children_first_page(self):
        transport = MagicMock()
        transport.request.return_value = _listing(["x"], cursor="n", has_more=True)

        page = BlockAPI(transport, page_size=50).list_children("p1")

        transport.request.assert_called_once_with(
            "GET", "/blocks/p1/children", params={"page_size": 50},
        )
        assert page.next_cursor == "n"

    def test_list_children_with_cursor(self):
        transport = MagicMock()
        transport.request.return_value = _listing([])
        BlockAPI(transport).list_children("p1", start_cursor="n")
        transport.request.assert_called_once_with(
            "GET", "/blocks/p1/children", params={"page_size": 100, "start_cursor": "n"},
        )


class TestPageAPI:
    def test_retrieve(self):
        transport = MagicMock()
        transport.request.return_value = {"object": "page", "id": "p1"}
        assert PageAPI(transport).retrieve("p1") == {"object": "page", "id": "p1"}
        transport.request.assert_called_once_with("GET", "/pages/p1")


class TestDatabaseAPI:
    def test_query_posts_body(self):
        transport = MagicMock()
        transport.request.return_value = _listing(["r1"], cursor="n", has_more=True)

        page = DatabaseAPI(transport, page_size=25).query("ds1", start_cursor="c")

        transport.request.assert_called_once_with(
            "POST", "/data_sources/ds1/query", json={"page_size": 25, "start_cursor": "c"},
        )
        assert [row["id"] for row in page.items] == ["r1"]
        assert page.next_cursor == "n"

    def test_query_all(self):
        transport = MagicMock()
        transport.paginate.return_value = iter([{"id": "r1"}])
        assert DatabaseAPI(transport).query_all("ds1") == [{"id": "r1"}]
        transport.paginate.assert_called_once_with("/data_sources/ds1/query", method="POST")


# ---------------------------------------------------------------------------
# Async wrappers
# ---------------------------------------------------------------------------


class TestAsyncWrappers:
    async def test_block_retrieve_and_list(self):
        transport = MagicMock()
        transport.request = AsyncMock(side_effect=[
            {"object": "block", "id": "b1"},
            _listing(["c"], cursor="n", has_more=True),
        ])
        api = AsyncBlockAPI(transport, page_size=10)

        assert (await api.retrieve("b1"))["id"] == "b1"
        page = await api.list_children("b1", start_cursor="s")

        assert page.next_cursor == "n"
        transport.request.assert_awaited_with(
            "GET", "/blocks/b1/children", params={"page_size": 10, "start_cursor": "s"},
        )

    async def test_page_retrieve(self):
        transport = MagicMock()
        transport.request = AsyncMock(return_value={"object": "page", "id": "p1"})
        assert (await AsyncPageAPI(transport).retrieve("p1"))["id"] == "p1"
        transport.request.assert_awaited_once_with("GET", "/pages/p1")

    async def test_database_query_and_all(self):
        transport = MagicMock()
        transport.request = AsyncMock(return_value=_listing(["r1"]))
        transport.paginate = _async_items([{"id": "r1"}, {"id": "r2"}])
        api = AsyncDatabaseAPI(transport)

        page = await api.query("ds1")
        rows = await api.query_all("ds1")

        transport.request.assert_awaited_once_with(
            "POST", "/data_sources/ds1/query", json={"page_size": 100},
        )
        assert page.next_cursor is None
        assert [row["id"] for row in rows] == ["r1", "r2"]

    @pytest.mark.parametrize("api_cls", [AsyncBlockAPI, AsyncDatabaseAPI])
    async def test_default_page_size(self, api_cls):
        assert api_cls(MagicMock())._page_size == 100
