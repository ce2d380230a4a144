"""Tests for the breadth-first tree fetcher (sync and async)."""

from __future__ import annotations

import dataclasses
from unittest.mock import MagicMock

import pytest

from notionmap import fetcher as fetcher_module
from notionmap.errors import (
    NotionmapNetworkError,
    NotionmapNotFoundError,
    NotionmapRetryExhaustedError,
    NotionmapValidationError,
)
from notionmap.fetcher import AsyncTreeFetcher, TreeFetcher
from notionmap.models import ChildrenPage


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    calls: list[float] = []
    monkeypatch.setattr(fetcher_module.time, "sleep", calls.append)
    return calls


def _fetcher(source, normalizer, config):
    return TreeFetcher(source.block_api, source.page_api, normalizer, config)


def _list_calls(source):
    return [(block_id, cursor) for op, block_id, cursor in source.calls if op == "list_children"]


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------

class TestTraversal:
    def test_cursor_drained_before_children(self, source, normalizer, config, block_factory, page_factory):
        source.add_page(page_factory("root"))
        source.add_children("root", [
            block_factory("a", text="A", has_children=True),
            block_factory("b", text="B"),
            block_factory("c", text="C", has_children=True),
        ])
        source.add_children("a", [block_factory("a1", text="A1")])
        source.add_children("c", [block_factory("c1", text="C1"), block_factory("c2", text="C2")])

        doc = _fetcher(source, normalizer, config).fetch("root")

        assert doc is not None
        assert doc.blocks["root"].child_ids == ["a", "b", "c"]
        assert doc.blocks["a"].child_ids == ["a1"]
        assert doc.blocks["c"].child_ids == ["c1", "c2"]
        assert _list_calls(source) == [("root", None), ("root", "2"), ("a", None), ("c", None)]
        assert doc.truncated is False
        assert doc.warnings == []
        assert doc.dangling_ids() == []

    def test_parent_links_and_root(self, source, normalizer, config, block_factory, page_factory):
        source.add_page(page_factory("root", "Post"))
        source.add_children("root", [block_factory("t", "toggle", text="T", has_children=True)])
        source.add_children("t", [block_factory("inner", text="x")])

        doc = _fetcher(source, normalizer, config).fetch("root")

        assert doc.root.kind == "page"
        assert doc.root.properties["title"] == [["Post"]]
        assert doc.blocks["t"].parent_id == "root"
        assert doc.blocks["inner"].parent_id == "t"
        assert len(doc) == 3

    def test_completion_log_names_page(self, source, normalizer, config, block_factory, page_factory, monkeypatch):
        log = MagicMock()
        monkeypatch.setattr(fetcher_module, "log", log)
        source.add_page(page_factory("root", "Release notes"))
        source.add_children("root", [block_factory("p", text="x")])

        _fetcher(source, normalizer, config).fetch("root")

        message = log.info.call_args.args[0]
        fields = log.info.call_args.kwargs["extra"]["extra_fields"]
        assert message == "Document fetched"
        assert fields["title"] == "Release notes"
        assert fields["blocks"] == 2

    def test_block_without_children_not_listed(self, source, normalizer, config, block_factory, page_factory):
        source.add_page(page_factory("root"))
        source.add_children("root", [block_factory("leaf", text="x")])
        _fetcher(source, normalizer, config).fetch("root")
        assert _list_calls(source) == [("root", None)]

    def test_page_with_table(self, source, normalizer, config, span_factory, block_factory, page_factory):
        source.add_page(page_factory("root"))
        source.add_children("root", [
            block_factory("p", text="Intro"),
            block_factory("tbl", "table", has_children=True, table_width=2, has_column_header=True),
        ])
        source.add_children("tbl", [
            block_factory("r1", "table_row", cells=[[span_factory("h1")], [span_factory("h2")]]),
            block_factory("r2", "table_row", cells=[[span_factory("v1")], [span_factory("v2")]]),
        ])

        doc = _fetcher(source, normalizer, config).fetch("root")

        assert set(doc.blocks) == {"root", "p", "tbl", "r1", "r2"}
        assert doc.blocks["p"].kind == "text"
        table = doc.blocks["tbl"]
        assert table.child_ids == ["r1", "r2"]
        assert table.style["table_block_column_order"] == ["cell_0", "cell_1"]
        assert doc.blocks["r2"].properties == {"cell_0": [["v1"]], "cell_1": [["v2"]]}

    def test_block_assets_reference_root_page(self, source, normalizer, config, block_factory, page_factory):
        url = "https://prod-files-secure.s3.amazonaws.com/ws/a.png?X-Amz-Signature=s"
        source.add_page(page_factory("root"))
        source.add_children("root", [block_factory("img", "image", file={"url": url})])

        doc = _fetcher(source, normalizer, config).fetch("root")

        source_ref = doc.blocks["img"].style["display_source"]
        assert "pageId=root" in source_ref
        assert "blockId=img" in source_ref

    def test_repeated_cursor_stops_listing(self, normalizer, config, block_factory, page_factory):
        blocks = MagicMock()
        blocks.list_children.return_value = ChildrenPage(
            items=[block_factory("x", text="x")], next_cursor="same",
        )
        pages = MagicMock()
        pages.retrieve.return_value = page_factory("root")

        doc = TreeFetcher(blocks, pages, normalizer, config).fetch("root")

        assert blocks.list_children.call_count == 2
        assert doc.blocks["root"].child_ids == ["x", "x"]
        assert len(doc) == 2

    def test_synced_copy_does_not_steal_children(self, source, normalizer, config, block_factory, page_factory):
        source.add_page(page_factory("root"))
        source.add_children("root", [
            block_factory("orig", "synced_block", has_children=True, synced_from=None),
            block_factory("copy", "synced_block", has_children=True, synced_from={"block_id": "orig"}),
        ])
        shared = block_factory("p1", text="shared")
        source.add_children("orig", [shared])
        source.add_children("copy", [shared])

        doc = _fetcher(source, normalizer, config).fetch("root")

        assert doc.blocks["orig"].child_ids == ["p1"]
        assert doc.blocks["copy"].child_ids == []
        assert doc.blocks["p1"].parent_id == "orig"
        for node in doc.blocks.values():
            for child_id in node.child_ids:
                assert doc.blocks[child_id].parent_id == node.id
        (warning,) = doc.warnings
        assert warning.code == "DUPLICATE_BLOCK"
        assert warning.context == {"block_id": "p1", "parent_id": "copy", "owner_id": "orig"}


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------

class TestFailures:
    def test_missing_root_returns_none(self, source, normalizer, config):
        assert _fetcher(source, normalizer, config).fetch("nope") is None
        assert source.calls == [("retrieve_page", "nope", None)]

    def test_root_transient_errors_exhausted(self, source, normalizer, config, page_factory):
        source.add_page(page_factory("root"))
        source.page_failures["root"] = [NotionmapNetworkError("down") for _ in range(3)]
        assert _fetcher(source, normalizer, config).fetch("root") is None

    def test_root_retried_then_succeeds(self, source, normalizer, config, page_factory, no_sleep):
        source.add_page(page_factory("root"))
        source.page_failures["root"] = [NotionmapRetryExhaustedError("429s")]
        doc = _fetcher(source, normalizer, config).fetch("root")
        assert doc is not None
        assert len(no_sleep) == 1

    def test_listing_retried_then_succeeds(self, source, normalizer, config, block_factory, page_factory):
        source.add_page(page_factory("root"))
        source.add_children("root", [block_factory("a", text="A")])
        source.failures["root"] = [NotionmapNetworkError("reset"), NotionmapNetworkError("reset")]

        doc = _fetcher(source, normalizer, config).fetch("root")

        assert doc.blocks["root"].child_ids == ["a"]
        assert doc.warnings == []
        assert _list_calls(source) == [("root", None)] * 3

    def test_subtree_abandoned_after_retries(self, source, normalizer, config, block_factory, page_factory):
        config.metrics = MagicMock()
        source.add_page(page_factory("root"))
        source.add_children("root", [
            block_factory("bad", text="B", has_children=True),
            block_factory("good", text="G", has_children=True),
        ])
        source.add_children("bad", [block_factory("lost", text="x")])
        source.add_children("good", [block_factory("kept", text="y")])
        source.failures["bad"] = [NotionmapNetworkError("down") for _ in range(3)]

        doc = _fetcher(source, normalizer, config).fetch("root")

        assert doc.blocks["bad"].child_ids == []
        assert "lost" not in doc
        assert doc.blocks["good"].child_ids == ["kept"]
        assert [w.code for w in doc.warnings] == ["SUBTREE_ABANDONED"]
        assert doc.warnings[0].context["block_id"] == "bad"
        config.metrics.increment.assert_any_call("notionmap.subtree_abandoned_total")

    def test_permanent_error_abandons_without_retry(
        self, source, normalizer, config, block_factory, page_factory,
    ):
        source.add_page(page_factory("root"))
        source.add_children("root", [block_factory("a", text="A", has_children=True)])
        source.failures["a"] = [NotionmapValidationError("bad request")]

        doc = _fetcher(source, normalizer, config).fetch("root")

        assert doc.blocks["a"].child_ids == []
        assert _list_calls(source).count(("a", None)) == 1

    def test_vanished_child_listing_not_retried(
        self, source, normalizer, config, block_factory, page_factory,
    ):
        source.add_page(page_factory("root"))
        source.add_children("root", [block_factory("a", text="A", has_children=True)])
        source.failures["a"] = [NotionmapNotFoundError("gone"), NotionmapNotFoundError("gone")]

        doc = _fetcher(source, normalizer, config).fetch("root")

        assert doc.blocks["a"].child_ids == []
        assert _list_calls(source).count(("a", None)) == 1

    def test_malformed_child_skipped(self, source, normalizer, config, block_factory, page_factory):
        source.add_page(page_factory("root"))
        source.add_children("root", [
            block_factory("a", text="A"),
            {"type": "paragraph", "paragraph": {}},
            "garbage",
            block_factory("b", text="B"),
        ])

        doc = _fetcher(source, normalizer, config).fetch("root")

        assert doc.blocks["root"].child_ids == ["a", "b"]
        assert [w.code for w in doc.warnings] == ["MALFORMED_BLOCK", "MALFORMED_BLOCK"]

    def test_extraction_warnings_land_on_document(
        self, source, normalizer, config, block_factory, page_factory, monkeypatch,
    ):
        from notionmap.converter import normalizer as normalizer_module

        def boom(self, node, data, page_id):
            raise ValueError("bad code block")

        monkeypatch.setitem(normalizer_module._BLOCK_EXTRACTORS, "code", boom)
        source.add_page(page_factory("root"))
        source.add_children("root", [block_factory("c", "code", text="x")])

        doc = _fetcher(source, normalizer, config).fetch("root")

        assert "c" in doc
        assert [w.code for w in doc.warnings] == ["MALFORMED_BLOCK"]
        assert normalizer.warnings == []


# ---------------------------------------------------------------------------
# Safety cap
# ---------------------------------------------------------------------------

class TestSafetyCap:
    def test_partial_map_keeps_child_order(self, source, normalizer, config, block_factory, page_factory):
        config = dataclasses.replace(config, max_blocks=3)
        source.add_page(page_factory("root"))
        source.add_children("root", [
            block_factory(f"c{i}", text=str(i), has_children=(i == 1)) for i in range(1, 5)
        ])
        source.add_children("c1", [block_factory("deep", text="d")])

        doc = _fetcher(source, normalizer, config).fetch("root")

        assert doc.truncated is True
        assert set(doc.blocks) == {"root", "c1", "c2"}
        assert doc.blocks["root"].child_ids == ["c1", "c2", "c3", "c4"]
        assert doc.dangling_ids() == ["c3", "c4"]
        assert [w.code for w in doc.warnings] == ["SAFETY_CAP_REACHED"]
        # The queue is cleared once the cap is hit.
        assert ("c1", None) not in _list_calls(source)

    def test_exact_fit_is_not_truncated(self, source, normalizer, config, block_factory, page_factory):
        config = dataclasses.replace(config, max_blocks=3)
        source.add_page(page_factory("root"))
        source.add_children("root", [block_factory("a", text="a"), block_factory("b", text="b")])

        doc = _fetcher(source, normalizer, config).fetch("root")

        assert doc.truncated is False
        assert len(doc) == 3


# ---------------------------------------------------------------------------
# Async
# ---------------------------------------------------------------------------

class TestAsyncTreeFetcher:
    def _fetcher(self, source, normalizer, config):
        return AsyncTreeFetcher(source.async_block_api, source.async_page_api, normalizer, config)

    async def test_fetch(self, source, normalizer, config, block_factory, page_factory):
        source.add_page(page_factory("root"))
        source.add_children("root", [
            block_factory("a", text="A", has_children=True),
            block_factory("b", text="B"),
            block_factory("c", text="C"),
        ])
        source.add_children("a", [block_factory("a1", text="A1")])

        doc = await self._fetcher(source, normalizer, config).fetch("root")

        assert doc.blocks["root"].child_ids == ["a", "b", "c"]
        assert doc.blocks["a"].child_ids == ["a1"]
        assert _list_calls(source) == [("root", None), ("root", "2"), ("a", None)]

    async def test_missing_root(self, source, normalizer, config):
        assert await self._fetcher(source, normalizer, config).fetch("nope") is None

    async def test_retry_and_abandon(self, source, normalizer, config, block_factory, page_factory):
        source.add_page(page_factory("root"))
        source.add_children("root", [
            block_factory("a", text="A", has_children=True),
            block_factory("b", text="B", has_children=True),
        ])
        source.add_children("a", [block_factory("a1", text="x")])
        source.add_children("b", [block_factory("b1", text="y")])
        source.failures["a"] = [NotionmapNetworkError("blip")]
        source.failures["b"] = [NotionmapNetworkError("down") for _ in range(3)]

        doc = await self._fetcher(source, normalizer, config).fetch("root")

        assert doc.blocks["a"].child_ids == ["a1"]
        assert doc.blocks["b"].child_ids == []
        assert [w.code for w in doc.warnings] == ["SUBTREE_ABANDONED"]
