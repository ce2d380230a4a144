"""Breadth-first fetch of a page's block tree into a :class:`DocumentMap`.

The fetcher walks the tree with an explicit FIFO queue seeded with the root
page.  For every dequeued node it drains the ``list children`` cursor
completely before normalising any child, so each node's ``child_ids`` is a
complete, ordered copy of the upstream order.

Failure handling is local:

* Root page missing or inaccessible -> ``None``.
* A children listing that keeps failing with transient errors, or fails
  with a non-retryable upstream error -> that node's subtree is abandoned
  (``child_ids == []``) and the walk continues.
* A malformed child -> skipped with a warning.
* ``config.max_blocks`` reached -> the map is returned with
  ``truncated=True``.  Ids past the cap stay in their parent's
  ``child_ids`` with no entry in the map.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from notionmap.config import NotionmapConfig
from notionmap.converter.normalizer import BlockNormalizer
from notionmap.errors import (
    NotionmapError,
    NotionmapMalformedBlockError,
    NotionmapNotFoundError,
)
from notionmap.models import ChildrenPage, DocumentMap, DocumentNode, FetchWarning
from notionmap.notion_api.blocks import AsyncBlockAPI, BlockAPI
from notionmap.notion_api.pages import AsyncPageAPI, PageAPI
from notionmap.notion_api.retries import compute_backoff, should_retry_call
from notionmap.observability import get_logger, resolve_metrics

log = get_logger("notionmap.fetcher")

T = TypeVar("T")


class _FetchState:
    """Mutable bookkeeping for one document fetch."""

    __slots__ = ("doc", "queue", "started", "title")

    def __init__(self, doc: DocumentMap, title: str = "") -> None:
        self.doc = doc
        self.title = title
        self.queue: deque[str] = deque([doc.root_id])
        self.started = time.monotonic()


class _BaseFetcher:
    """Queue, cap and warning logic shared by both fetchers; no I/O."""

    def __init__(self, normalizer: BlockNormalizer, config: NotionmapConfig) -> None:
        self._normalizer = normalizer
        self._config = config
        self._metrics = resolve_metrics(config.metrics)

    # ── Retry policy ────────────────────────────────────────────────────

    def _retry_delay(self, op: str, target: str, exc: NotionmapError, attempt: int) -> float | None:
        """Return the backoff before another attempt, or ``None`` to give up."""
        if not should_retry_call(exc, attempt, self._config.fetch_retry_attempts):
            return None
        delay = compute_backoff(
            attempt,
            base=self._config.fetch_retry_base_delay,
            maximum=self._config.retry_max_delay,
            jitter=self._config.retry_jitter,
        )
        log.info(
            "Retrying upstream call",
            extra={
                "extra_fields": {
                    "op": op,
                    "block_id": target,
                    "attempt": attempt + 1,
                    "delay": round(delay, 3),
                    "error_code": str(exc.code),
                }
            },
        )
        return delay

    # ── Root ────────────────────────────────────────────────────────────

    def _root_failed(self, root_id: str, exc: NotionmapError) -> None:
        message = (
            "Root page not found"
            if isinstance(exc, NotionmapNotFoundError)
            else "Root page unavailable"
        )
        log.error(
            message,
            extra={
                "extra_fields": {
                    "op": "fetch_document",
                    "root_id": root_id,
                    "error_code": str(exc.code),
                    "error": exc.message,
                }
            },
        )

    def _start(self, root_id: str, page: dict[str, Any]) -> _FetchState | None:
        try:
            root = self._normalizer.normalize_page(page)
        except NotionmapMalformedBlockError as exc:
            self._root_failed(root_id, exc)
            return None
        doc = DocumentMap(root_id=root.id)
        doc.blocks[root.id] = root
        self._metrics.increment("notionmap.blocks_fetched_total")
        return _FetchState(doc, title=self._normalizer.page_title(page))

    # ── Children ────────────────────────────────────────────────────────

    def _warn(self, state: _FetchState, code: str, message: str, context: dict) -> None:
        state.doc.warnings.append(FetchWarning(code=code, message=message, context=context))

    def _abandon(self, state: _FetchState, node: DocumentNode, exc: NotionmapError) -> None:
        node.child_ids = []
        self._metrics.increment("notionmap.subtree_abandoned_total")
        context = {"block_id": node.id, "error_code": str(exc.code)}
        log.warning(
            "Subtree abandoned",
            extra={
                "extra_fields": {
                    "op": "list_children",
                    "attempts": self._config.fetch_retry_attempts,
                    "error": exc.message,
                    **context,
                }
            },
        )
        self._warn(state, "SUBTREE_ABANDONED", f"Children of {node.id} could not be fetched", context)

    def _reach_cap(self, state: _FetchState) -> None:
        doc = state.doc
        doc.truncated = True
        state.queue.clear()
        self._metrics.increment("notionmap.safety_cap_reached_total")
        context = {"root_id": doc.root_id, "max_blocks": self._config.max_blocks}
        log.warning(
            "Safety cap reached, returning partial document",
            extra={"extra_fields": {"op": "fetch_document", **context}},
        )
        self._warn(state, "SAFETY_CAP_REACHED", "Block limit reached; document is partial", context)

    def _duplicate(self, state: _FetchState, parent: DocumentNode, existing: DocumentNode) -> None:
        # A synced-block copy lists the original's children under their own ids.
        context = {
            "block_id": existing.id,
            "parent_id": parent.id,
            "owner_id": existing.parent_id,
        }
        log.info(
            "Block already attached elsewhere, skipping",
            extra={"extra_fields": {"op": "normalize", **context}},
        )
        self._warn(
            state,
            "DUPLICATE_BLOCK",
            f"Block {existing.id} already belongs to {existing.parent_id}",
            context,
        )

    def _add_children(self, state: _FetchState, parent: DocumentNode, items: list[Any]) -> None:
        """Normalise *items* in order and attach them to *parent*."""
        doc = state.doc
        for item in items:
            try:
                child = self._normalizer.normalize(
                    item, parent.id, page_id=doc.root_id, warnings=doc.warnings,
                )
            except NotionmapMalformedBlockError as exc:
                self._metrics.increment("notionmap.malformed_blocks_total")
                log.warning(
                    "Skipping malformed block",
                    extra={"extra_fields": {"op": "normalize", **exc.context}},
                )
                self._warn(state, "MALFORMED_BLOCK", exc.message, dict(exc.context))
                continue

            existing = doc.blocks.get(child.id)
            if existing is not None and existing.parent_id != parent.id:
                self._duplicate(state, parent, existing)
                continue

            parent.child_ids.append(child.id)
            if doc.truncated or existing is not None:
                continue
            if len(doc.blocks) >= self._config.max_blocks:
                self._reach_cap(state)
                continue

            doc.blocks[child.id] = child
            self._metrics.increment("notionmap.blocks_fetched_total")
            if child.has_children:
                state.queue.append(child.id)

    def _next_node(self, state: _FetchState) -> DocumentNode | None:
        while state.queue:
            node = state.doc.blocks.get(state.queue.popleft())
            if node is not None:
                return node
        return None

    def _finish(self, state: _FetchState) -> DocumentMap:
        doc = state.doc
        elapsed_ms = (time.monotonic() - state.started) * 1000
        self._metrics.timing("notionmap.document_fetch_duration_ms", elapsed_ms)
        log.info(
            "Document fetched",
            extra={
                "extra_fields": {
                    "op": "fetch_document",
                    "root_id": doc.root_id,
                    "title": state.title,
                    "blocks": len(doc),
                    "truncated": doc.truncated,
                    "warnings": len(doc.warnings),
                    "duration_ms": round(elapsed_ms, 1),
                }
            },
        )
        return doc


# ---------------------------------------------------------------------------
# Sync fetcher
# ---------------------------------------------------------------------------

class TreeFetcher(_BaseFetcher):
    """Fetch a page and its block tree into a :class:`DocumentMap`.

    Parameters
    ----------
    blocks:
        Block API used for ``list_children``.
    pages:
        Page API used to retrieve the root page.
    normalizer:
        Converts upstream objects into nodes.
    config:
        Supplies ``max_blocks`` and the retry policy.
    """

    def __init__(
        self,
        blocks: BlockAPI,
        pages: PageAPI,
        normalizer: BlockNormalizer,
        config: NotionmapConfig,
    ) -> None:
        super().__init__(normalizer, config)
        self._blocks = blocks
        self._pages = pages

    def fetch(self, root_id: str) -> DocumentMap | None:
        """Fetch the document rooted at page *root_id*.

        Returns
        -------
        DocumentMap or None
            ``None`` if the root page cannot be retrieved.
        """
        try:
            page = self._call(lambda: self._pages.retrieve(root_id), "retrieve_page", root_id)
        except NotionmapError as exc:
            self._root_failed(root_id, exc)
            return None

        state = self._start(root_id, page)
        if state is None:
            return None

        while (node := self._next_node(state)) is not None:
            try:
                items = self._list_all(node.id)
            except NotionmapError as exc:
                self._abandon(state, node, exc)
                continue
            self._add_children(state, node, items)

        return self._finish(state)

    def _call(self, fn: Callable[[], T], op: str, target: str) -> T:
        attempt = 0
        while True:
            try:
                return fn()
            except NotionmapNotFoundError:
                raise
            except NotionmapError as exc:
                delay = self._retry_delay(op, target, exc, attempt)
                if delay is None:
                    raise
            time.sleep(delay)
            attempt += 1

    def _list_all(self, block_id: str) -> list[Any]:
        items: list[Any] = []
        cursor: str | None = None
        seen: set[str] = set()
        while True:
            page: ChildrenPage = self._call(
                lambda: self._blocks.list_children(block_id, cursor),
                "list_children",
                block_id,
            )
            items.extend(page.items)
            cursor = page.next_cursor
            if not cursor or cursor in seen:
                return items
            seen.add(cursor)


# ---------------------------------------------------------------------------
# Async fetcher
# ---------------------------------------------------------------------------

class AsyncTreeFetcher(_BaseFetcher):
    """Async twin of :class:`TreeFetcher`.

    One call walks its document sequentially; separate documents can be
    fetched concurrently with separate :meth:`fetch` calls.
    """

    def __init__(
        self,
        blocks: AsyncBlockAPI,
        pages: AsyncPageAPI,
        normalizer: BlockNormalizer,
        config: NotionmapConfig,
    ) -> None:
        super().__init__(normalizer, config)
        self._blocks = blocks
        self._pages = pages

    async def fetch(self, root_id: str) -> DocumentMap | None:
        """Fetch the document rooted at page *root_id* (async)."""
        try:
            page = await self._call(lambda: self._pages.retrieve(root_id), "retrieve_page", root_id)
        except NotionmapError as exc:
            self._root_failed(root_id, exc)
            return None

        state = self._start(root_id, page)
        if state is None:
            return None

        while (node := self._next_node(state)) is not None:
            try:
                items = await self._list_all(node.id)
            except NotionmapError as exc:
                self._abandon(state, node, exc)
                continue
            self._add_children(state, node, items)

        return self._finish(state)

    async def _call(self, fn: Callable[[], Awaitable[T]], op: str, target: str) -> T:
        attempt = 0
        while True:
            try:
                return await fn()
            except NotionmapNotFoundError:
                raise
            except NotionmapError as exc:
                delay = self._retry_delay(op, target, exc, attempt)
                if delay is None:
                    raise
            await asyncio.sleep(delay)
            attempt += 1

    async def _list_all(self, block_id: str) -> list[Any]:
        items: list[Any] = []
        cursor: str | None = None
        seen: set[str] = set()
        while True:
            page: ChildrenPage = await self._call(
                lambda: self._blocks.list_children(block_id, cursor),
                "list_children",
                block_id,
            )
            items.extend(page.items)
            cursor = page.next_cursor
            if not cursor or cursor in seen:
                return items
            seen.add(cursor)
