"""Asset URL rewriting into durable image-proxy references.

Notion hands out file URLs that are presigned against S3 and expire about
an hour after the API call.  A rendered page outlives that window, so every
fragile URL is replaced by a proxy reference::

    <site_url>/api/image-proxy?url=<encoded>&pageId=..&blockId=..&source=block

The reference survives expiry: the embedded metadata is enough for
:class:`~notionmap.assets.refresh.AssetRefresher` to ask the API for a fresh
signature.

The module-level helpers are pure string functions; :class:`AssetURLRewriter`
binds them to a :class:`~notionmap.config.NotionmapConfig`.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qs, unquote, unquote_plus, urlencode, urlsplit

from notionmap.config import NotionmapConfig
from notionmap.models import ProxyMetadata
from notionmap.utils.redact import mask_presigned_url

IMAGE_PROXY_PATH = "/api/image-proxy"

# Bounds on unwrapping, so adversarial input cannot loop forever.
_MAX_UNWRAP_ROUNDS = 12
_MAX_DECODE_ATTEMPTS = 6

_ABSOLUTE_HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)
_SECURE_STORAGE_PATH_RE = re.compile(r"^/secure\.notion-static\.com/")
_SIGNATURE_PARAMS = frozenset({"x-amz-signature", "signature"})

__all__ = [
    "IMAGE_PROXY_PATH",
    "AssetURLRewriter",
    "is_already_proxied",
    "mask_presigned_url",
    "parse_proxy_reference",
    "unwrap_proxied_url",
]


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def _is_absolute_http(value: str) -> bool:
    return bool(_ABSOLUTE_HTTP_RE.match(value))


def is_already_proxied(url: str | None, proxy_path: str = IMAGE_PROXY_PATH) -> bool:
    """Return ``True`` if *url* is a proxy reference, raw or percent-encoded."""
    if not url:
        return False
    if proxy_path in url:
        return True
    return proxy_path in unquote(url)


def _url_param(reference: str) -> str | None:
    """Return the decoded ``url`` query value of *reference*, if any."""
    try:
        query = urlsplit(reference).query
    except ValueError:
        return None
    values = parse_qs(query, keep_blank_values=False).get("url")
    if not values:
        return None
    return values[0]


def unwrap_proxied_url(url: str, proxy_path: str = IMAGE_PROXY_PATH) -> str:
    """Recover the innermost absolute URL from a (possibly nested) reference.

    Each round either extracts the ``url`` parameter of a proxy reference
    or percent-decodes one level.  Unwrapping stops at the first absolute
    http(s) URL that is not itself a proxy reference.  After twelve rounds,
    up to six further decodes are attempted; if no absolute URL emerges the
    best partial decoding is returned.

    Parameters
    ----------
    url:
        A proxy reference, an encoded proxy reference, or a plain URL.
    proxy_path:
        The proxy endpoint path to recognise.

    Returns
    -------
    str
        The innermost URL.  A plain absolute URL is returned unchanged.
    """
    current = str(url)

    for _ in range(_MAX_UNWRAP_ROUNDS):
        if proxy_path in current:
            inner = _url_param(current)
            if inner and inner != current:
                current = inner
                continue
        if _is_absolute_http(current):
            break
        decoded = unquote_plus(current)
        if decoded == current:
            break
        current = decoded

    for _ in range(_MAX_DECODE_ATTEMPTS):
        if _is_absolute_http(current):
            break
        decoded = unquote(current)
        if decoded == current:
            break
        current = decoded

    return current


def parse_proxy_reference(
    reference: str,
    proxy_path: str = IMAGE_PROXY_PATH,
) -> tuple[str, ProxyMetadata]:
    """Split a proxy reference into its target URL and recovery metadata.

    *reference* may be a full proxy URL (absolute or site-relative), a
    percent-encoded one, or a bare target URL; a bare URL yields empty
    metadata.
    """
    current = str(reference)
    if proxy_path not in current and proxy_path in unquote_plus(current):
        current = unquote_plus(current)

    metadata = ProxyMetadata()
    if proxy_path in current:
        try:
            query = urlsplit(current).query
        except ValueError:
            query = ""
        params = {
            key: values[0]
            for key, values in parse_qs(query).items()
            if values
        }
        metadata = ProxyMetadata.from_query(params)

    return unwrap_proxied_url(current, proxy_path), metadata


# ---------------------------------------------------------------------------
# Rewriter
# ---------------------------------------------------------------------------

class AssetURLRewriter:
    """Decide which asset URLs are fragile and wrap them in proxy references.

    Parameters
    ----------
    config:
        Supplies ``site_url``, ``proxy_path``, the fragile and stable host
        lists, and the ``rewrite_assets`` switch.
    """

    def __init__(self, config: NotionmapConfig) -> None:
        self._config = config
        self._fragile = tuple(d.lower().lstrip(".") for d in config.asset_fragile_domains)
        self._stable = tuple(h.lower() for h in config.asset_stable_hosts)

    @property
    def proxy_path(self) -> str:
        return self._config.proxy_path

    def _host_matches(self, host: str, domains: tuple[str, ...]) -> bool:
        return any(host == d or host.endswith("." + d) for d in domains)

    def is_stable(self, url: str) -> bool:
        """Return ``True`` for URLs on hosts that never expire."""
        try:
            host = (urlsplit(url).hostname or "").lower()
        except ValueError:
            return False
        return bool(host) and self._host_matches(host, self._stable)

    def should_rewrite(self, url: str | None) -> bool:
        """Return ``True`` if *url* is a presigned, expiring storage URL.

        The host must sit under a fragile storage domain, and the URL must
        either carry a signature parameter, live under the secure file
        storage path, or be served from a ``prod-files-secure`` bucket.
        """
        if not isinstance(url, str) or not _is_absolute_http(url):
            return False
        if is_already_proxied(url, self.proxy_path):
            return False
        try:
            parts = urlsplit(url)
        except ValueError:
            return False

        host = (parts.hostname or "").lower()
        if not host or self._host_matches(host, self._stable):
            return False
        if not self._host_matches(host, self._fragile):
            return False

        param_names = {key.lower() for key in parse_qs(parts.query, keep_blank_values=True)}
        if param_names & _SIGNATURE_PARAMS:
            return True
        if _SECURE_STORAGE_PATH_RE.match(parts.path):
            return True
        return host.startswith("prod-files-secure.")

    def rewrite(self, url: str, metadata: ProxyMetadata | None = None) -> str:
        """Wrap *url* in a proxy reference.

        Already-proxied references, ``data:`` and other non-http URLs, and
        stable hosts are returned unchanged.
        """
        if not url or is_already_proxied(url, self.proxy_path):
            return url
        if not _is_absolute_http(url) or self.is_stable(url):
            return url

        params: dict[str, str] = {"url": url}
        if metadata is not None:
            params.update(metadata.as_query())
        return f"{self._config.site_url}{self.proxy_path}?{urlencode(params)}"

    def map_url(self, url: str | None, metadata: ProxyMetadata | None = None) -> str | None:
        """Rewrite *url* when it is fragile; otherwise return it as-is."""
        if not url or not self._config.rewrite_assets:
            return url
        if self.should_rewrite(url):
            return self.rewrite(url, metadata)
        return url

    def unwrap(self, reference: str) -> str:
        """Recover the original URL from a reference built by :meth:`rewrite`."""
        return unwrap_proxied_url(reference, self.proxy_path)
