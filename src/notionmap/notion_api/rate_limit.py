"""Token-bucket rate limiters for client-side pacing.

Notion allows an average of three requests per second per integration.  A
deep page tree turns into hundreds of ``list children`` calls, so every
transport paces itself through a bucket: tokens refill at ``rate`` per
second up to ``burst``, and a caller that finds the bucket empty waits for
the deficit.  :class:`TokenBucket` blocks the thread; :class:`AsyncTokenBucket`
awaits.
"""

from __future__ import annotations

import asyncio
import threading
import time


class _Bucket:
    """Refill bookkeeping shared by both bucket flavours."""

    __slots__ = ("burst", "last_refill", "rate", "tokens")

    def __init__(self, rate_rps: float, burst: int) -> None:
        if rate_rps <= 0:
            raise ValueError(f"rate_rps must be > 0, got {rate_rps}")
        if burst < 1:
            raise ValueError(f"burst must be >= 1, got {burst}")

        self.rate: float = rate_rps
        self.burst: int = burst
        self.tokens: float = float(burst)
        self.last_refill: float = time.monotonic()

    def _take(self, tokens: int) -> float:
        """Consume *tokens* and return how long the caller must wait.

        Must be called with the subclass lock held.
        """
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.burst, self.tokens + elapsed * self.rate)
        self.last_refill = now

        if self.tokens >= tokens:
            self.tokens -= tokens
            return 0.0

        wait = (tokens - self.tokens) / self.rate
        self.tokens = 0.0
        return wait


class TokenBucket(_Bucket):
    """Thread-safe token bucket for synchronous transports.

    Parameters
    ----------
    rate_rps:
        Sustained refill rate in tokens per second.
    burst:
        Maximum number of tokens the bucket can hold.
    """

    __slots__ = ("_lock",)

    def __init__(self, rate_rps: float, burst: int = 10) -> None:
        super().__init__(rate_rps, burst)
        self._lock = threading.Lock()

    def acquire(self, tokens: int = 1) -> float:
        """Acquire *tokens*, sleeping if necessary.

        Returns the number of seconds waited (``0.0`` if none).
        """
        with self._lock:
            wait = self._take(tokens)
        if wait > 0:
            # Sleep outside the lock so other threads are not serialised
            # behind this one.
            time.sleep(wait)
        return wait


class AsyncTokenBucket(_Bucket):
    """Coroutine-safe token bucket for asynchronous transports.

    Parameters
    ----------
    rate_rps:
        Sustained refill rate in tokens per second.
    burst:
        Maximum number of tokens the bucket can hold.
    """

    __slots__ = ("_lock",)

    def __init__(self, rate_rps: float, burst: int = 10) -> None:
        super().__init__(rate_rps, burst)
        self._lock = asyncio.Lock()

    async def acquire(self, tokens: int = 1) -> float:
        """Acquire *tokens*, awaiting if necessary.

        Returns the number of seconds waited (``0.0`` if none).
        """
        async with self._lock:
            wait = self._take(tokens)
        if wait > 0:
            await asyncio.sleep(wait)
        return wait
