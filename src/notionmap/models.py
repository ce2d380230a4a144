"""Data models for notionmap.

A fetched page is represented as a :class:`DocumentMap`: a flat mapping
from node id to :class:`DocumentNode`, where each node lists its children
by id.  Rich text inside ``properties`` uses the decorated-text format
produced by :func:`notionmap.converter.rich_text.transcode_rich_text`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class BlockKind(str, Enum):
    """Internal node kinds, as understood by the record-map renderer."""

    PAGE = "page"
    TEXT = "text"
    HEADER = "header"
    SUB_HEADER = "sub_header"
    SUB_SUB_HEADER = "sub_sub_header"
    BULLETED_LIST = "bulleted_list"
    NUMBERED_LIST = "numbered_list"
    TO_DO = "to_do"
    TOGGLE = "toggle"
    QUOTE = "quote"
    CALLOUT = "callout"
    DIVIDER = "divider"
    CODE = "code"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    FILE = "file"
    PDF = "pdf"
    BOOKMARK = "bookmark"
    EQUATION = "equation"
    TABLE = "table"
    TABLE_ROW = "table_row"
    COLUMN_LIST = "column_list"
    COLUMN = "column"
    TRANSCLUSION_CONTAINER = "transclusion_container"
    TRANSCLUSION_REFERENCE = "transclusion_reference"
    BREADCRUMB = "breadcrumb"
    TABLE_OF_CONTENTS = "table_of_contents"
    COLLECTION_VIEW = "collection_view"
    EMBED = "embed"


# ---------------------------------------------------------------------------
# Document tree
# ---------------------------------------------------------------------------

@dataclass
class DocumentNode:
    """One normalised block or page.

    Attributes
    ----------
    id:
        Upstream block/page id.
    kind:
        A :class:`BlockKind` value, or the raw upstream type for block types
        without a mapping.
    properties:
        Semantic fields (``title``, ``caption``, ``language``, ``checked``,
        ``cell_<n>`` ...) as decorated-text runs.
    style:
        Display hints (colours, ``display_source``, table geometry, icons,
        synced-block and database back-references).
    parent_id:
        Id of the owning node; empty for the root page.
    parent_table:
        ``"block"`` for blocks, ``"space"`` for the root page.
    child_ids:
        Ordered child ids, in upstream order.
    has_children:
        Upstream ``has_children`` flag.
    created_at / edited_at:
        Upstream ``created_time`` / ``last_edited_time``, verbatim.
    """

    id: str
    kind: str
    properties: dict[str, Any] = field(default_factory=dict)
    style: dict[str, Any] = field(default_factory=dict)
    parent_id: str = ""
    parent_table: str = "block"
    child_ids: list[str] = field(default_factory=list)
    has_children: bool = False
    created_at: str | None = None
    edited_at: str | None = None
    alive: bool = True

    def to_record_value(self) -> dict[str, Any]:
        """Serialise to the block ``value`` shape used by record-map renderers."""
        value: dict[str, Any] = {
            "id": self.id,
            "version": 1,
            "type": str(self.kind.value if isinstance(self.kind, Enum) else self.kind),
            "properties": self.properties,
            "created_time": self.created_at,
            "last_edited_time": self.edited_at,
            "parent_id": self.parent_id,
            "parent_table": self.parent_table,
            "alive": self.alive,
        }
        if self.style:
            value["format"] = self.style
        if self.child_ids:
            value["content"] = list(self.child_ids)
        return value


@dataclass
class FetchWarning:
    """A non-fatal issue encountered while building a document.

    Attributes
    ----------
    code:
        Machine-readable code: ``"MALFORMED_BLOCK"``, ``"SUBTREE_ABANDONED"``,
        ``"SAFETY_CAP_REACHED"`` or ``"DUPLICATE_BLOCK"``.
    message:
        Human-readable description.
    context:
        Structured diagnostics (``block_id``, ``parent_id`` ...).
    """

    code: str
    message: str
    context: dict = field(default_factory=dict)


@dataclass
class DocumentMap:
    """The flattened, id-keyed representation of one page's block tree.

    Attributes
    ----------
    root_id:
        Id of the root page node.
    blocks:
        Every fetched node keyed by id.
    signed_urls:
        Presigned URL cache section (recomputable; stripped by the optimizer).
    preview_images:
        Preview image cache section (recomputable; stripped by the optimizer).
    truncated:
        ``True`` when the safety cap stopped the fetch early.
    warnings:
        Non-fatal issues collected during the fetch.
    """

    root_id: str
    blocks: dict[str, DocumentNode] = field(default_factory=dict)
    signed_urls: dict[str, str] = field(default_factory=dict)
    preview_images: dict[str, Any] = field(default_factory=dict)
    truncated: bool = False
    warnings: list[FetchWarning] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.blocks)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.blocks

    @property
    def root(self) -> DocumentNode | None:
        return self.blocks.get(self.root_id)

    def dangling_ids(self) -> list[str]:
        """Child ids referenced by some node but absent from the map.

        Non-empty only for a partial map (safety cap reached).
        """
        missing: list[str] = []
        for node in self.blocks.values():
            missing.extend(cid for cid in node.child_ids if cid not in self.blocks)
        return missing

    def to_record_map(self) -> dict[str, Any]:
        """Serialise to an ``ExtendedRecordMap``-shaped dict."""
        return {
            "block": {
                node_id: {"role": "reader", "value": node.to_record_value()}
                for node_id, node in self.blocks.items()
            },
            "collection": {},
            "collection_view": {},
            "notion_user": {},
            "collection_query": {},
            "signed_urls": dict(self.signed_urls),
            "preview_images": dict(self.preview_images),
        }


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------

# Wire names of the optional proxy reference parameters.
_PROXY_PARAM_NAMES: dict[str, str] = {
    "page_id": "pageId",
    "block_id": "blockId",
    "property": "property",
    "property_type": "propertyType",
    "source": "source",
}


@dataclass(frozen=True)
class ProxyMetadata:
    """Recovery metadata embedded in a proxy asset reference.

    Attributes
    ----------
    page_id:
        Page owning the asset (root page for block assets).
    block_id:
        Block owning the asset, when the asset lives in a block.
    property:
        Page property holding the asset (``"cover"``, ``"icon"`` or a
        ``files`` property name).
    property_type:
        Upstream type of *property*.
    source:
        Origin tag (``"block"``, ``"page"``).
    """

    page_id: str | None = None
    block_id: str | None = None
    property: str | None = None
    property_type: str | None = None
    source: str | None = None

    def as_query(self) -> dict[str, str]:
        """Return the non-empty fields keyed by their wire names."""
        query: dict[str, str] = {}
        for attr, wire_name in _PROXY_PARAM_NAMES.items():
            value = getattr(self, attr)
            if isinstance(value, str) and value:
                query[wire_name] = value
        return query

    @classmethod
    def from_query(cls, query: dict[str, str]) -> ProxyMetadata:
        """Build metadata from wire-named query parameters."""
        return cls(**{
            attr: query.get(wire_name) or None
            for attr, wire_name in _PROXY_PARAM_NAMES.items()
        })


@dataclass
class AssetResponse:
    """Result of fetching an asset through :class:`AssetProxy`.

    Attributes
    ----------
    status:
        HTTP status to send to the client.
    content:
        Response body.
    content_type:
        ``Content-Type`` of *content*.
    headers:
        Extra response headers (cache control).
    refreshed:
        ``True`` when a stale reference was refreshed before succeeding.
    placeholder:
        ``True`` when *content* is the "image unavailable" placeholder.
    """

    status: int
    content: bytes
    content_type: str
    headers: dict[str, str] = field(default_factory=dict)
    refreshed: bool = False
    placeholder: bool = False


# ---------------------------------------------------------------------------
# Content-source pages
# ---------------------------------------------------------------------------

@dataclass
class ChildrenPage:
    """One page of a cursor-paginated upstream listing.

    Attributes
    ----------
    items:
        Raw upstream objects, in upstream order.
    next_cursor:
        Cursor for the next page, or ``None`` when the listing is drained.
    """

    items: list[dict] = field(default_factory=list)
    next_cursor: str | None = None
