"""notionmap.notion_api -- Notion API transport and endpoint wrappers.

This sub-package provides:

* :mod:`.rate_limit` -- Token bucket rate limiters (sync and async).
* :mod:`.retries` -- Retry decision logic and exponential backoff.
* :mod:`.transport` -- HTTP transport with auth, retries, and rate limiting.
* :mod:`.pages` -- Page API wrappers.
* :mod:`.blocks` -- Block API wrappers.
* :mod:`.databases` -- Data source query wrappers.
"""

from __future__ import annotations

from .blocks import AsyncBlockAPI, BlockAPI
from .databases import AsyncDatabaseAPI, DatabaseAPI
from .pages import AsyncPageAPI, PageAPI
from .rate_limit import AsyncTokenBucket, TokenBucket
from .retries import compute_backoff, should_retry, should_retry_asset, should_retry_call
from .transport import AsyncNotionTransport, NotionTransport

__all__ = [
    "AsyncBlockAPI",
    "AsyncDatabaseAPI",
    "AsyncNotionTransport",
    "AsyncPageAPI",
    "AsyncTokenBucket",
    "BlockAPI",
    "DatabaseAPI",
    "NotionTransport",
    "PageAPI",
    "TokenBucket",
    "compute_backoff",
    "should_retry",
    "should_retry_asset",
    "should_retry_call",
]
