"""Token and presigned-URL redaction for safe logging.

Before any Notion API payload or asset URL is written to logs or debug
dumps it passes through this module:

* **Authorization headers and token-like keys** are replaced with a masked
  placeholder that shows only the last four characters of the token.
* **Presigned query parameters** (``X-Amz-*``, anything containing
  ``signature``, ``token`` or ``credential``) keep their names but lose
  their values, so a logged asset URL can never be replayed.
* The full bearer **token is never present** in the output.
"""

from __future__ import annotations

import copy
import re
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

# Substrings: if any of these appear in a key name (case-insensitive), the
# value is redacted.
_SENSITIVE_KEY_PATTERNS: frozenset[str] = frozenset({
    "token",
    "secret",
    "password",
    "credential",
    "authorization",
    "cookie",
    "api_key",
    "api-key",
})

# Query parameter names whose values are presigned secrets.
_PRESIGNED_PARAM_RE = re.compile(r"^x-amz-|signature|token|credential", re.IGNORECASE)

# Absolute URLs embedded in free text.
_URL_IN_TEXT_RE = re.compile(r"https?://[^\s\"'<>]+", re.IGNORECASE)

_MASK = "[redacted]"

# Longest string kept when a value cannot be parsed as a URL.
_MAX_UNPARSED_LENGTH = 2000


def mask_presigned_url(url: Any) -> str:
    """Return *url* with the values of presigned query parameters masked.

    Parameters
    ----------
    url:
        Any value; non-strings are converted with :func:`str`.

    Returns
    -------
    str
        The URL with ``X-Amz-*`` / signature / token / credential values
        replaced by ``[redacted]``.  Values that are not absolute URLs are
        returned truncated to 2000 characters.

    Examples
    --------
    >>> mask_presigned_url("https://s3.amazonaws.com/a.png?X-Amz-Signature=abc&w=1")
    'https://s3.amazonaws.com/a.png?X-Amz-Signature=%5Bredacted%5D&w=1'
    """
    text = str(url)
    try:
        parts = urlsplit(text)
    except ValueError:
        return text[:_MAX_UNPARSED_LENGTH]
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return text[:_MAX_UNPARSED_LENGTH]
    if not parts.query:
        return text

    pairs = parse_qsl(parts.query, keep_blank_values=True)
    masked = [
        (key, _MASK if _PRESIGNED_PARAM_RE.search(key) else value)
        for key, value in pairs
    ]
    return urlunsplit(parts._replace(query=urlencode(masked)))


def mask_presigned_urls_in_text(text: str) -> str:
    """Mask every absolute URL found inside free-form *text*."""
    if "://" not in text:
        return text
    return _URL_IN_TEXT_RE.sub(lambda m: mask_presigned_url(m.group(0)), text)


def _mask_token(value: str, token: str | None) -> str:
    """Replace bearer / token strings with a safe placeholder."""
    if token and token in value:
        suffix = token[-4:] if len(token) >= 4 else "****"
        placeholder = f"<redacted:...{suffix}>"
        if token in placeholder:
            placeholder = "<redacted>"
        value = value.replace(token, placeholder)
    return re.sub(
        r"(Bearer\s+)\S+",
        lambda m: f"{m.group(1)}<redacted>",
        value,
    )


def _redact_value(value: Any, token: str | None) -> Any:
    """Redact a single value (recursive for dicts / lists)."""
    if isinstance(value, dict):
        return _redact_dict(value, token)
    if isinstance(value, list):
        return [_redact_value(item, token) for item in value]
    if isinstance(value, str):
        value = mask_presigned_urls_in_text(value)
        if token:
            value = _mask_token(value, token)
        return value
    if isinstance(value, (bytes, bytearray)):
        return f"<binary:{len(value)}_bytes>"
    return value


def _redact_dict(d: dict, token: str | None) -> dict:
    """Recursively redact a dictionary."""
    result: dict = {}
    for key, value in d.items():
        key_lower = key.lower() if isinstance(key, str) else ""
        if any(pat in key_lower for pat in _SENSITIVE_KEY_PATTERNS):
            if isinstance(value, str):
                result[key] = _mask_token(value, token)
            else:
                result[key] = "<redacted>"
        else:
            result[key] = _redact_value(value, token)
    return result


def redact(payload: dict, token: str | None = None) -> dict:
    """Return a deep copy of *payload* with sensitive data redacted.

    Parameters
    ----------
    payload:
        The dictionary to sanitize (a Notion API request/response dump or a
        set of headers).
    token:
        The Notion integration token.  If supplied, any occurrence of this
        exact string anywhere in the payload is replaced.

    Returns
    -------
    dict
        A new dictionary; the original *payload* is never mutated.

    Examples
    --------
    >>> redact({"Authorization": "Bearer ntn_abc123"})
    {'Authorization': 'Bearer <redacted>'}
    """
    safe = copy.deepcopy(payload)
    return _redact_dict(safe, token)
