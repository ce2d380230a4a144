"""Error hierarchy for notionmap.

Every public error class inherits from :class:`NotionmapError`.  Each
carries a machine-readable ``code`` (from :class:`ErrorCode`), a
human-readable ``message``, an optional structured ``context`` dict, and an
optional ``cause`` (chained exception).

Errors fall into three families:

* **Transport** -- raised by :mod:`notionmap.notion_api.transport` for
  upstream responses.  :data:`TRANSIENT_ERRORS` lists the ones that the tree
  fetcher retries (network failures and exhausted transport retries).
* **Pipeline** -- :class:`NotionmapMalformedBlockError` for a block the
  normalizer cannot interpret.
* **Assets** -- stale proxy references and unrecoverable refreshes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error notionmap can raise."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    NETWORK_ERROR = "NETWORK_ERROR"
    MALFORMED_BLOCK = "MALFORMED_BLOCK"
    ASSET_ERROR = "ASSET_ERROR"
    ASSET_STALE = "ASSET_STALE"
    ASSET_NOT_RECOVERABLE = "ASSET_NOT_RECOVERABLE"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class NotionmapError(Exception):
    """Base exception for all notionmap errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
        Keys are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


# ---------------------------------------------------------------------------
# API / transport errors
# ---------------------------------------------------------------------------

class NotionmapValidationError(NotionmapError):
    """Notion API returned 400 (or another non-retryable 4xx).

    Context keys: ``status_code``, ``notion_code``, ``body``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class NotionmapAuthError(NotionmapError):
    """Notion API returned 401 -- the integration token is invalid or expired.

    Context keys: ``status_code``, ``notion_code``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.AUTH_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class NotionmapPermissionError(NotionmapError):
    """Notion API returned 403 -- the integration lacks access to the resource.

    Context keys: ``status_code``, ``notion_code``, ``operation``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.PERMISSION_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


class NotionmapNotFoundError(NotionmapError):
    """Notion API returned 404 -- the page or block no longer exists.

    Never retried.

    Context keys: ``status_code``, ``notion_code``, ``path``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=message,
            context=context,
            cause=cause,
        )


class NotionmapRetryExhaustedError(NotionmapError):
    """All transport retry attempts have been exhausted (429/5xx).

    Context keys: ``attempts``, ``last_status_code``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.RETRY_EXHAUSTED,
            message=message,
            context=context,
            cause=cause,
        )


class NotionmapNetworkError(NotionmapError):
    """A transport-level failure occurred (timeout, DNS, connection reset).

    Context keys: ``url``, ``attempt``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.NETWORK_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


TRANSIENT_ERRORS: tuple[type[NotionmapError], ...] = (
    NotionmapNetworkError,
    NotionmapRetryExhaustedError,
)
"""Errors worth another attempt at the call site that experienced them."""


# ---------------------------------------------------------------------------
# Pipeline errors
# ---------------------------------------------------------------------------

class NotionmapMalformedBlockError(NotionmapError):
    """An upstream block could not be interpreted by the normalizer.

    Never fatal to sibling nodes; the fetcher logs and skips the block.

    Context keys: ``block_id``, ``block_type``, ``parent_id``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.MALFORMED_BLOCK,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Asset errors
# ---------------------------------------------------------------------------

class NotionmapAssetError(NotionmapError):
    """Base class for asset-reference errors.

    Context varies by subclass.
    """

    def __init__(
        self,
        code: str = ErrorCode.ASSET_ERROR,
        message: str = "Asset error",
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            context=context,
            cause=cause,
        )


class NotionmapStaleAssetError(NotionmapAssetError):
    """Dereferencing a rewritten asset URL failed with 401/403/404/410.

    Context keys: ``status_code``, ``url`` (masked).
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.ASSET_STALE,
            message=message,
            context=context,
            cause=cause,
        )


class NotionmapAssetNotRecoverableError(NotionmapAssetError):
    """No fresh URL could be derived for a stale asset reference.

    Context keys: ``page_id``, ``block_id``, ``property``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.ASSET_NOT_RECOVERABLE,
            message=message,
            context=context,
            cause=cause,
        )
