"""Metrics hook protocol and no-op default implementation.

notionmap emits counters and timings at the points where a document build
degrades or spends time.  By default a :class:`NoopMetricsHook` is used;
pass any object satisfying :class:`MetricsHook` as ``config.metrics`` to
route them to a real backend.

Emitted metric names:

* ``notionmap.requests_total``              -- counter
* ``notionmap.retries_total``               -- counter
* ``notionmap.rate_limited_total``          -- counter
* ``notionmap.request_duration_ms``         -- timing
* ``notionmap.rate_limit_wait_ms``          -- timing
* ``notionmap.blocks_fetched_total``        -- counter
* ``notionmap.subtree_abandoned_total``     -- counter
* ``notionmap.malformed_blocks_total``      -- counter
* ``notionmap.safety_cap_reached_total``    -- counter
* ``notionmap.document_fetch_duration_ms``  -- timing
* ``notionmap.asset_refresh_total``         -- counter (tag ``outcome``)
* ``notionmap.asset_proxy_total``           -- counter (tag ``outcome``)
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy.

    All methods accept an optional *tags* dict of string keys and values.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration in milliseconds."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to an absolute value."""
        ...


class NoopMetricsHook:
    """Metrics implementation that discards every data point."""

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass


def resolve_metrics(metrics: object | None) -> MetricsHook:
    """Return *metrics* or a :class:`NoopMetricsHook` when it is ``None``."""
    return metrics if metrics is not None else NoopMetricsHook()  # type: ignore[return-value]
