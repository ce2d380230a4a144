"""Post-process a fetched :class:`DocumentMap` for rendering.

Three passes, applied to a deep copy:

1. **Flatten transparent kinds.**  Synced-block wrappers, breadcrumbs and
   tables of contents have no renderer; their children are spliced into
   the parent's ``child_ids`` in place of the wrapper and re-parented.
   Nested wrappers are flattened transitively.
2. **Strip caches.**  ``preview_images`` and ``signed_urls`` are emptied.
3. **Trim decorations.**  Every decorated-text run in a list-valued
   property keeps at most its first two elements.  Runs that carry extra
   trailing elements lose them; this is accepted to keep payloads small.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable
from typing import Any

from notionmap.config import DEFAULT_TRANSPARENT_KINDS
from notionmap.models import DocumentMap, DocumentNode
from notionmap.observability import get_logger

log = get_logger("notionmap.optimizer")


def _kind(node: DocumentNode) -> str:
    kind = node.kind
    return getattr(kind, "value", kind)


def _expand(
    node_id: str,
    blocks: dict[str, DocumentNode],
    transparent: set[str],
    resolved: dict[str, list[str]],
    in_progress: set[str],
) -> list[str]:
    """Return the ids that replace *node_id* in its parent's child list."""
    if node_id not in transparent:
        return [node_id]
    if node_id in resolved:
        return resolved[node_id]
    if node_id in in_progress:
        # Cycle between transparent nodes: contributes nothing.
        return []

    in_progress.add(node_id)
    expanded: list[str] = []
    for child_id in blocks[node_id].child_ids:
        expanded.extend(_expand(child_id, blocks, transparent, resolved, in_progress))
    in_progress.discard(node_id)
    resolved[node_id] = expanded
    return expanded


def flatten_transparent(doc: DocumentMap, kinds: Iterable[str]) -> int:
    """Splice transparent nodes out of *doc* in place.

    Returns the number of nodes removed.
    """
    kind_set = set(kinds)
    transparent = {
        node_id
        for node_id, node in doc.blocks.items()
        if node_id != doc.root_id and _kind(node) in kind_set
    }
    if not transparent:
        return 0

    resolved: dict[str, list[str]] = {}
    for node_id, node in doc.blocks.items():
        if node_id in transparent:
            continue
        if not any(cid in transparent for cid in node.child_ids):
            continue
        new_children: list[str] = []
        for child_id in node.child_ids:
            new_children.extend(_expand(child_id, doc.blocks, transparent, resolved, set()))
        node.child_ids = new_children
        for child_id in new_children:
            child = doc.blocks.get(child_id)
            if child is not None:
                child.parent_id = node_id

    for node_id in transparent:
        del doc.blocks[node_id]
    return len(transparent)


def _trim_runs(value: Any) -> Any:
    if not isinstance(value, list):
        return value
    return [
        run[:2] if isinstance(run, list) and len(run) > 2 else run
        for run in value
    ]


def optimize_document(
    doc: DocumentMap | None,
    transparent_kinds: Iterable[str] = DEFAULT_TRANSPARENT_KINDS,
) -> DocumentMap | None:
    """Return an optimised copy of *doc*; ``None`` stays ``None``.

    Parameters
    ----------
    doc:
        A document built by the tree fetcher.  Never mutated.
    transparent_kinds:
        Node kinds to flatten away.

    Returns
    -------
    DocumentMap or None
        A new document with transparent nodes flattened, cache sections
        emptied, and decorated-text runs trimmed.
    """
    if doc is None:
        return None

    optimized = copy.deepcopy(doc)
    removed = flatten_transparent(optimized, transparent_kinds)

    optimized.preview_images = {}
    optimized.signed_urls = {}

    for node in optimized.blocks.values():
        node.properties = {key: _trim_runs(value) for key, value in node.properties.items()}

    log.debug(
        "Document optimized",
        extra={
            "extra_fields": {
                "op": "optimize",
                "root_id": optimized.root_id,
                "flattened": removed,
                "blocks": len(optimized),
            }
        },
    )
    return optimized
