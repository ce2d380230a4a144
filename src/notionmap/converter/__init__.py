"""Notion API objects → record-map nodes.

Public API:

- :class:`BlockNormalizer` -- blocks and pages → :class:`DocumentNode`.
- :func:`transcode_rich_text` -- rich_text arrays → decorated-text runs.
- :func:`plain_text` -- rich_text arrays → plain string.
"""

from notionmap.converter.normalizer import UPSTREAM_KIND_MAP, BlockNormalizer, resolve_kind
from notionmap.converter.rich_text import plain_text, transcode_rich_text

__all__ = [
    "UPSTREAM_KIND_MAP",
    "BlockNormalizer",
    "plain_text",
    "resolve_kind",
    "transcode_rich_text",
]
