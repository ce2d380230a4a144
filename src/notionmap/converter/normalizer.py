"""Normalise Notion API blocks and pages into :class:`DocumentNode` records.

The public API exposes one type-tagged JSON object per block; the renderer
expects the flat, record-map shape where semantic content lives in
``properties`` (as decorated text) and display hints live in ``style``.
:class:`BlockNormalizer` bridges the two with a dispatch table of per-type
extractors.  Fragile asset URLs are routed through the
:class:`~notionmap.assets.urls.AssetURLRewriter` on the way in.

The normalizer does not fetch anything: children are listed by the tree
fetcher, which calls :meth:`BlockNormalizer.normalize` for every child.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from notionmap.assets.urls import AssetURLRewriter
from notionmap.config import NotionmapConfig
from notionmap.converter.rich_text import plain_text, transcode_rich_text
from notionmap.errors import NotionmapMalformedBlockError
from notionmap.models import BlockKind, DocumentNode, FetchWarning, ProxyMetadata
from notionmap.observability import get_logger

log = get_logger("notionmap.normalizer")

# Upstream block type -> internal kind.  Types missing here keep their
# upstream name.
UPSTREAM_KIND_MAP: dict[str, str] = {
    "paragraph": BlockKind.TEXT.value,
    "heading_1": BlockKind.HEADER.value,
    "heading_2": BlockKind.SUB_HEADER.value,
    "heading_3": BlockKind.SUB_SUB_HEADER.value,
    "bulleted_list_item": BlockKind.BULLETED_LIST.value,
    "numbered_list_item": BlockKind.NUMBERED_LIST.value,
    "link_preview": BlockKind.BOOKMARK.value,
    "child_database": BlockKind.COLLECTION_VIEW.value,
    "child_page": BlockKind.PAGE.value,
}

# Block types whose payload points at a hosted or external file.
_MEDIA_TYPES: frozenset[str] = frozenset({
    "image", "video", "audio", "file", "pdf", "embed",
})

_BACKGROUND_SUFFIX = "_background"


def resolve_kind(block_type: str, data: dict) -> str:
    """Map an upstream block type to its internal kind."""
    if block_type == "synced_block":
        if isinstance(data.get("synced_from"), dict):
            return BlockKind.TRANSCLUSION_REFERENCE.value
        return BlockKind.TRANSCLUSION_CONTAINER.value
    return UPSTREAM_KIND_MAP.get(block_type, block_type)


def _file_url(obj: Any) -> str | None:
    """Return ``file.url`` or ``external.url`` of a file object, file first."""
    if not isinstance(obj, dict):
        return None
    for key in ("file", "external"):
        inner = obj.get(key)
        if isinstance(inner, dict) and isinstance(inner.get("url"), str) and inner["url"]:
            return inner["url"]
    return None


def _rich_text_or_none(value: Any) -> list[list] | None:
    runs = transcode_rich_text(value)
    return runs or None


class BlockNormalizer:
    """Convert upstream block and page objects into :class:`DocumentNode`.

    Extraction failures inside a type-specific extractor are not fatal: the
    block is kept as a placeholder node (id, kind and links only) and a
    :class:`FetchWarning` is appended to :attr:`warnings`.

    Parameters
    ----------
    config:
        Package configuration.
    rewriter:
        Asset URL rewriter.  Defaults to one built from *config*.
    """

    def __init__(
        self,
        config: NotionmapConfig,
        rewriter: AssetURLRewriter | None = None,
    ) -> None:
        self._config = config
        self._rewriter = rewriter or AssetURLRewriter(config)
        self.warnings: list[FetchWarning] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def normalize(
        self,
        block: Any,
        parent_id: str,
        page_id: str | None = None,
        warnings: list[FetchWarning] | None = None,
    ) -> DocumentNode:
        """Normalise a single upstream block.

        Parameters
        ----------
        block:
            A block object as returned by ``GET /blocks/{id}/children``.
        parent_id:
            Id of the node that listed this block.
        page_id:
            Id of the page being fetched; embedded in proxy references of
            the block's assets.
        warnings:
            List receiving extraction warnings for this call.  Defaults to
            :attr:`warnings`; the tree fetcher passes one list per document.

        Returns
        -------
        DocumentNode
            The normalised node.  ``child_ids`` is left empty; the fetcher
            fills it after listing the block's children.

        Raises
        ------
        NotionmapMalformedBlockError
            If *block* is not a mapping or carries no usable ``id``/``type``.
        """
        if not isinstance(block, dict):
            raise NotionmapMalformedBlockError(
                message=f"Block under {parent_id} is not an object",
                context={"parent_id": parent_id, "block_type": type(block).__name__},
            )
        block_id = block.get("id")
        block_type = block.get("type")
        if not isinstance(block_id, str) or not block_id:
            raise NotionmapMalformedBlockError(
                message=f"Block under {parent_id} has no id",
                context={"parent_id": parent_id, "block_type": block_type},
            )
        if not isinstance(block_type, str) or not block_type:
            raise NotionmapMalformedBlockError(
                message=f"Block {block_id} has no type",
                context={"block_id": block_id, "parent_id": parent_id},
            )

        data = block.get(block_type)
        if not isinstance(data, dict):
            data = {}

        node = DocumentNode(
            id=block_id,
            kind=resolve_kind(block_type, data),
            parent_id=parent_id,
            has_children=bool(block.get("has_children")),
            created_at=block.get("created_time"),
            edited_at=block.get("last_edited_time"),
            alive=not (block.get("archived") or block.get("in_trash")),
        )

        try:
            rich_text = data.get("rich_text")
            if isinstance(rich_text, list):
                node.properties["title"] = transcode_rich_text(rich_text)

            extractor = _BLOCK_EXTRACTORS.get(block_type)
            if extractor is None and block_type in _MEDIA_TYPES:
                extractor = BlockNormalizer._extract_media
            if extractor is not None:
                extractor(self, node, data, page_id)

            self._apply_color(node, data)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            node.properties = {}
            node.style = {}
            self._warn(
                "MALFORMED_BLOCK",
                f"Could not extract {block_type} block {block_id}: {exc}",
                {"block_id": block_id, "block_type": block_type, "parent_id": parent_id},
                self.warnings if warnings is None else warnings,
            )

        return node

    def normalize_page(self, page: Any) -> DocumentNode:
        """Normalise a page object into the root node of a document.

        The title goes to ``properties["title"]``; icon and cover go to
        ``style["page_icon"]`` / ``style["page_cover"]``.  ``files`` and
        ``url`` properties become ``[[url], ...]`` and other simple property
        types become decorated text, keyed by property name.

        Raises
        ------
        NotionmapMalformedBlockError
            If *page* is not a mapping or has no ``id``.
        """
        if not isinstance(page, dict) or not isinstance(page.get("id"), str) or not page["id"]:
            raise NotionmapMalformedBlockError(
                message="Page object has no id",
                context={"block_type": "page"},
            )
        page_id: str = page["id"]

        node = DocumentNode(
            id=page_id,
            kind=BlockKind.PAGE.value,
            parent_id="",
            parent_table="space",
            has_children=True,
            created_at=page.get("created_time"),
            edited_at=page.get("last_edited_time"),
            alive=not (page.get("archived") or page.get("in_trash")),
        )

        icon = self._page_icon(page_id, page.get("icon"))
        if icon:
            node.style["page_icon"] = icon
        cover = _file_url(page.get("cover"))
        if cover:
            node.style["page_cover"] = self._rewriter.map_url(
                cover,
                ProxyMetadata(
                    page_id=page_id,
                    property="cover",
                    property_type="cover",
                    source="page",
                ),
            )

        properties = page.get("properties")
        if isinstance(properties, dict):
            for name, prop in properties.items():
                if not isinstance(prop, dict):
                    continue
                value = self._page_property(page_id, name, prop)
                if value is not None:
                    key = "title" if prop.get("type") == "title" else name
                    node.properties[key] = value

        return node

    def page_title(self, page: dict) -> str:
        """Return the plain-text title of a page object."""
        properties = page.get("properties")
        if not isinstance(properties, dict):
            return ""
        for prop in properties.values():
            if isinstance(prop, dict) and prop.get("type") == "title":
                return plain_text(prop.get("title"))
        return ""

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _warn(
        self,
        code: str,
        message: str,
        context: dict,
        sink: list[FetchWarning],
    ) -> None:
        log.warning(
            message,
            extra={"extra_fields": {"op": "normalize", "code": code, **context}},
        )
        sink.append(FetchWarning(code=code, message=message, context=context))

    def _apply_color(self, node: DocumentNode, data: dict) -> None:
        color = data.get("color")
        if not isinstance(color, str) or not color or color == "default":
            return
        node.style["block_color"] = color
        if color.endswith(_BACKGROUND_SUFFIX):
            node.style["background_color"] = color[: -len(_BACKGROUND_SUFFIX)]
        else:
            node.style["color"] = color

    def _block_asset(self, url: str | None, node: DocumentNode, page_id: str | None) -> str | None:
        return self._rewriter.map_url(
            url,
            ProxyMetadata(page_id=page_id, block_id=node.id, source="block"),
        )

    def _page_icon(self, page_id: str, icon: Any) -> str | None:
        if not isinstance(icon, dict):
            return None
        if isinstance(icon.get("emoji"), str) and icon["emoji"]:
            return icon["emoji"]
        url = _file_url(icon)
        if url is None:
            return None
        return self._rewriter.map_url(
            url,
            ProxyMetadata(
                page_id=page_id,
                property="icon",
                property_type="icon",
                source="page",
            ),
        )

    def _page_property(self, page_id: str, name: str, prop: dict) -> list | None:
        prop_type = prop.get("type")
        value = prop.get(prop_type) if isinstance(prop_type, str) else None

        if prop_type in ("title", "rich_text"):
            return _rich_text_or_none(value)
        if prop_type == "url":
            return [[value]] if isinstance(value, str) and value else None
        if prop_type == "files":
            if not isinstance(value, list):
                return None
            metadata = ProxyMetadata(
                page_id=page_id,
                property=name,
                property_type="files",
                source="page",
            )
            urls = [_file_url(item) for item in value]
            return [[self._rewriter.map_url(u, metadata)] for u in urls if u] or None
        if prop_type == "select":
            if isinstance(value, dict) and value.get("name"):
                return [[value["name"]]]
            return None
        if prop_type == "multi_select":
            names = [o["name"] for o in value or [] if isinstance(o, dict) and o.get("name")]
            return [[",".join(names)]] if names else None
        if prop_type == "date":
            if not isinstance(value, dict) or not value.get("start"):
                return None
            date: dict[str, Any] = {
                "type": "daterange" if value.get("end") else "date",
                "start_date": value["start"],
            }
            if value.get("end"):
                date["end_date"] = value["end"]
            if value.get("time_zone"):
                date["time_zone"] = value["time_zone"]
            return [["‣", [["d", date]]]]
        if prop_type == "checkbox":
            return [["Yes" if value else "No"]]
        if prop_type == "number":
            return [[str(value)]] if value is not None else None
        return None

    # ------------------------------------------------------------------
    # Type-specific extractors
    # ------------------------------------------------------------------

    def _extract_code(self, node: DocumentNode, data: dict, page_id: str | None) -> None:
        node.properties["language"] = [[data.get("language") or "plain text"]]
        caption = _rich_text_or_none(data.get("caption"))
        if caption:
            node.properties["caption"] = caption

    def _extract_media(self, node: DocumentNode, data: dict, page_id: str | None) -> None:
        url = _file_url(data)
        if url is None and isinstance(data.get("url"), str) and data["url"]:
            url = data["url"]
        if url:
            source = self._block_asset(url, node, page_id)
            node.style["display_source"] = source
            node.properties["source"] = [[source]]

        caption = _rich_text_or_none(data.get("caption"))
        if caption:
            node.properties["caption"] = caption
        name = data.get("name")
        if isinstance(name, str) and name and "title" not in node.properties:
            node.properties["title"] = [[name]]

    def _extract_bookmark(self, node: DocumentNode, data: dict, page_id: str | None) -> None:
        url = data.get("url")
        if not isinstance(url, str) or not url:
            return
        node.properties["link"] = [[url]]
        node.properties["title"] = _rich_text_or_none(data.get("caption")) or [[url]]

    def _extract_equation(self, node: DocumentNode, data: dict, page_id: str | None) -> None:
        expression = data.get("expression")
        if isinstance(expression, str) and expression:
            node.properties["title"] = [[expression]]

    def _extract_to_do(self, node: DocumentNode, data: dict, page_id: str | None) -> None:
        if "checked" in data:
            node.properties["checked"] = [["Yes" if data["checked"] else "No"]]

    def _extract_table(self, node: DocumentNode, data: dict, page_id: str | None) -> None:
        width = data.get("table_width")
        if isinstance(width, int) and width > 0:
            node.style["table_width"] = width
            node.style["table_block_column_order"] = [f"cell_{i}" for i in range(width)]
        node.style["table_block_column_header"] = bool(data.get("has_column_header"))
        node.style["table_block_row_header"] = bool(data.get("has_row_header"))

    def _extract_table_row(self, node: DocumentNode, data: dict, page_id: str | None) -> None:
        cells = data.get("cells")
        if not isinstance(cells, list):
            return
        for index, cell in enumerate(cells):
            node.properties[f"cell_{index}"] = transcode_rich_text(cell)

    def _extract_callout(self, node: DocumentNode, data: dict, page_id: str | None) -> None:
        icon = data.get("icon")
        if not isinstance(icon, dict):
            return
        if isinstance(icon.get("emoji"), str) and icon["emoji"]:
            node.style["page_icon"] = icon["emoji"]
            return
        url = _file_url(icon)
        if url:
            node.style["page_icon"] = self._block_asset(url, node, page_id)

    def _extract_synced_block(self, node: DocumentNode, data: dict, page_id: str | None) -> None:
        synced_from = data.get("synced_from")
        if isinstance(synced_from, dict) and synced_from.get("block_id"):
            node.style["synced_from"] = synced_from["block_id"]

    def _extract_child_database(self, node: DocumentNode, data: dict, page_id: str | None) -> None:
        node.properties["title"] = [[data.get("title") or ""]]
        node.style["database_id"] = node.id

    def _extract_child_page(self, node: DocumentNode, data: dict, page_id: str | None) -> None:
        node.properties["title"] = [[data.get("title") or ""]]


# ------------------------------------------------------------------
# Extractor dispatch table
# ------------------------------------------------------------------

_Extractor = Callable[[BlockNormalizer, DocumentNode, dict, "str | None"], None]

_BLOCK_EXTRACTORS: dict[str, _Extractor] = {
    "code": BlockNormalizer._extract_code,
    "bookmark": BlockNormalizer._extract_bookmark,
    "link_preview": BlockNormalizer._extract_bookmark,
    "equation": BlockNormalizer._extract_equation,
    "to_do": BlockNormalizer._extract_to_do,
    "table": BlockNormalizer._extract_table,
    "table_row": BlockNormalizer._extract_table_row,
    "callout": BlockNormalizer._extract_callout,
    "synced_block": BlockNormalizer._extract_synced_block,
    "child_database": BlockNormalizer._extract_child_database,
    "child_page": BlockNormalizer._extract_child_page,
    # image, video, audio, file, pdf and embed fall back to _extract_media
}
