"""Asset URL handling: rewriting, refreshing, and proxying.

- :mod:`.urls` -- fragile-URL detection and proxy reference building.
- :mod:`.refresh` -- fresh URL derivation for stale references.
- :mod:`.proxy` -- fetch-through-proxy with refresh and placeholder.
"""

from __future__ import annotations

from .proxy import PLACEHOLDER_SVG, AssetProxy
from .refresh import (
    STALE_STATUSES,
    AssetRefresher,
    AsyncAssetRefresher,
    is_stale_status,
    url_from_block,
    url_from_page,
)
from .urls import (
    IMAGE_PROXY_PATH,
    AssetURLRewriter,
    is_already_proxied,
    mask_presigned_url,
    parse_proxy_reference,
    unwrap_proxied_url,
)

__all__ = [
    "IMAGE_PROXY_PATH",
    "PLACEHOLDER_SVG",
    "STALE_STATUSES",
    "AssetProxy",
    "AssetRefresher",
    "AssetURLRewriter",
    "AsyncAssetRefresher",
    "is_already_proxied",
    "is_stale_status",
    "mask_presigned_url",
    "parse_proxy_reference",
    "unwrap_proxied_url",
    "url_from_block",
    "url_from_page",
]
