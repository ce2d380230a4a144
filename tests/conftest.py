"""Shared test fixtures for the notionmap test suite."""

from __future__ import annotations

from typing import Any

import pytest

from notionmap.assets.urls import AssetURLRewriter
from notionmap.config import NotionmapConfig
from notionmap.converter.normalizer import BlockNormalizer
from notionmap.errors import NotionmapNotFoundError
from notionmap.models import ChildrenPage

CREATED = "2025-01-01T00:00:00.000Z"
EDITED = "2025-01-02T00:00:00.000Z"


# ---------------------------------------------------------------------------
# Upstream object builders
# ---------------------------------------------------------------------------

def rich(text: str, href: str | None = None, **annotations: Any) -> dict:
    """Build one Notion rich_text span."""
    span: dict[str, Any] = {
        "type": "text",
        "text": {"content": text, "link": {"url": href} if href else None},
        "plain_text": text,
        "href": href,
        "annotations": {
            "bold": False,
            "italic": False,
            "strikethrough": False,
            "underline": False,
            "code": False,
            "color": "default",
            **annotations,
        },
    }
    return span


def make_block(
    block_id: str,
    block_type: str = "paragraph",
    text: str | None = None,
    has_children: bool = False,
    **data: Any,
) -> dict:
    """Build a Notion block object with ``data`` as its type payload."""
    payload = dict(data)
    if text is not None:
        payload["rich_text"] = [rich(text)]
    return {
        "object": "block",
        "id": block_id,
        "type": block_type,
        block_type: payload,
        "has_children": has_children,
        "created_time": CREATED,
        "last_edited_time": EDITED,
    }


def make_page(
    page_id: str,
    title: str = "Root",
    properties: dict | None = None,
    **extra: Any,
) -> dict:
    """Build a Notion page object with a title property."""
    props: dict[str, Any] = {
        "Name": {"id": "title", "type": "title", "title": [rich(title)]},
    }
    props.update(properties or {})
    page = {
        "object": "page",
        "id": page_id,
        "created_time": CREATED,
        "last_edited_time": EDITED,
        "icon": None,
        "cover": None,
        "properties": props,
    }
    page.update(extra)
    return page


# ---------------------------------------------------------------------------
# In-memory content source
# ---------------------------------------------------------------------------

class FakeContentSource:
    """In-memory stand-in for the Notion page and block endpoints.

    Children listings are paginated with ``page_size`` items per page and
    integer cursors.  ``failures[block_id]`` holds exceptions raised, one
    per call, before the listing of that block succeeds.
    """

    def __init__(self, page_size: int = 2) -> None:
        self.page_size = page_size
        self.pages: dict[str, dict] = {}
        self.blocks: dict[str, dict] = {}
        self.children: dict[str, list[Any]] = {}
        self.failures: dict[str, list[Exception]] = {}
        self.page_failures: dict[str, list[Exception]] = {}
        self.calls: list[tuple[str, str, str | None]] = []
        self.block_api = _FakeBlocks(self)
        self.page_api = _FakePages(self)
        self.async_block_api = _AsyncFakeBlocks(self)
        self.async_page_api = _AsyncFakePages(self)

    def add_page(self, page: dict) -> dict:
        self.pages[page["id"]] = page
        return page

    def add_children(self, parent_id: str, blocks: list[Any]) -> None:
        self.children.setdefault(parent_id, []).extend(blocks)
        for block in blocks:
            if isinstance(block, dict) and "id" in block:
                self.blocks[block["id"]] = block

    def list_children(self, block_id: str, start_cursor: str | None = None) -> ChildrenPage:
        self.calls.append(("list_children", block_id, start_cursor))
        pending = self.failures.get(block_id)
        if pending:
            raise pending.pop(0)
        items = self.children.get(block_id, [])
        start = int(start_cursor) if start_cursor else 0
        end = start + self.page_size
        return ChildrenPage(
            items=items[start:end],
            next_cursor=str(end) if end < len(items) else None,
        )

    def retrieve_page(self, page_id: str) -> dict:
        self.calls.append(("retrieve_page", page_id, None))
        pending = self.page_failures.get(page_id)
        if pending:
            raise pending.pop(0)
        if page_id not in self.pages:
            raise NotionmapNotFoundError(f"page {page_id} not found")
        return self.pages[page_id]

    def retrieve_block(self, block_id: str) -> dict:
        self.calls.append(("retrieve_block", block_id, None))
        if block_id not in self.blocks:
            raise NotionmapNotFoundError(f"block {block_id} not found")
        return self.blocks[block_id]


class _FakeBlocks:
    def __init__(self, source: FakeContentSource) -> None:
        self._source = source

    def retrieve(self, block_id: str) -> dict:
        return self._source.retrieve_block(block_id)

    def list_children(self, block_id: str, start_cursor: str | None = None) -> ChildrenPage:
        return self._source.list_children(block_id, start_cursor)


class _FakePages:
    def __init__(self, source: FakeContentSource) -> None:
        self._source = source

    def retrieve(self, page_id: str) -> dict:
        return self._source.retrieve_page(page_id)


class _AsyncFakeBlocks:
    def __init__(self, source: FakeContentSource) -> None:
        self._source = source

    async def retrieve(self, block_id: str) -> dict:
        return self._source.retrieve_block(block_id)

    async def list_children(self, block_id: str, start_cursor: str | None = None) -> ChildrenPage:
        return self._source.list_children(block_id, start_cursor)


class _AsyncFakePages:
    def __init__(self, source: FakeContentSource) -> None:
        self._source = source

    async def retrieve(self, page_id: str) -> dict:
        return self._source.retrieve_page(page_id)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config() -> NotionmapConfig:
    """Test configuration with a dummy token and instant retries."""
    return NotionmapConfig(
        token="test_token_1234",
        site_url="https://blog.example.com",
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        retry_jitter=False,
        fetch_retry_base_delay=0.0,
        rate_limit_rps=10_000.0,
    )


@pytest.fixture
def rewriter(config: NotionmapConfig) -> AssetURLRewriter:
    return AssetURLRewriter(config)


@pytest.fixture
def normalizer(config: NotionmapConfig, rewriter: AssetURLRewriter) -> BlockNormalizer:
    return BlockNormalizer(config, rewriter)


@pytest.fixture
def source() -> FakeContentSource:
    return FakeContentSource()


@pytest.fixture
def block_factory():
    return make_block


@pytest.fixture
def page_factory():
    return make_page


@pytest.fixture
def span_factory():
    return rich
