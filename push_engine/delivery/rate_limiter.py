"""Token-bucket rate limiter shared by all dispatch workers."""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from push_engine.config.exceptions import ConfigurationError
from push_engine.logging import get_logger

from .cancellation import CancellationToken
from .exceptions import DeliveryCancelledError, RateLimitTimeout

logger = get_logger(__name__, component="rate_limiter")


@dataclass(frozen=True)
class RateLimiterSnapshot:
    capacity: int
    refill_rate: float
    tokens: float


class TokenBucketRateLimiter:
    """Token bucket with capacity C and refill rate R tokens/second.

    Acquisition is reservation-based: the caller's tokens are debited under
    the lock (the balance may go negative) and the caller then sleeps for
    ``deficit / R`` outside the lock. Later callers see the debt and queue
    behind it, so a waiter is never overtaken indefinitely and its wait is
    bounded by the refill time of what is already reserved ahead of it.

    One instance is built per engine and shared across send() calls.
    """

    def __init__(
        self,
        capacity: int,
        refill_rate: float,
        initial_tokens: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create the bucket.

        Args:
            capacity: Maximum tokens held (burst size)
            refill_rate: Tokens added per second
            initial_tokens: Tokens available at construction
            clock: Monotonic clock (injectable for tests)

        Raises:
            ConfigurationError: On non-positive capacity/rate or bad initial level
        """
        if capacity <= 0:
            raise ConfigurationError(f"Rate limiter capacity must be positive, got {capacity}")
        if refill_rate <= 0:
            raise ConfigurationError(f"Rate limiter refill_rate must be positive, got {refill_rate}")
        if not 0 <= initial_tokens <= capacity:
            raise ConfigurationError(
                f"initial_tokens must be within [0, {capacity}], got {initial_tokens}"
            )

        self.capacity = capacity
        self.refill_rate = float(refill_rate)
        self._clock = clock
        self._tokens = float(initial_tokens)
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self, now: float) -> None:
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(float(self.capacity), self._tokens + elapsed * self.refill_rate)
            self._last_refill = now

    def available(self) -> float:
        """Current balance (negative while reservations are outstanding)."""
        with self._lock:
            self._refill(self._clock())
            return self._tokens

    def snapshot(self) -> RateLimiterSnapshot:
        return RateLimiterSnapshot(
            capacity=self.capacity, refill_rate=self.refill_rate, tokens=self.available()
        )

    def acquire(
        self,
        tokens: float = 1,
        timeout: Optional[float] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> float:
        """Take ``tokens`` from the bucket, blocking until they are available.

        Args:
            tokens: Tokens to take (at most the bucket capacity)
            timeout: Longest acceptable wait in seconds; None waits as needed
            cancellation: Token whose cancellation or deadline ends the wait

        Returns:
            Seconds spent waiting

        Raises:
            ConfigurationError: If tokens is not within (0, capacity]
            RateLimitTimeout: If the wait would exceed the timeout or the
                remaining deadline (no tokens are consumed)
            DeliveryCancelledError: If cancelled before or during the wait
                (reserved tokens are returned)
        """
        if tokens <= 0 or tokens > self.capacity:
            raise ConfigurationError(
                f"Cannot acquire {tokens} tokens from a bucket of capacity {self.capacity}"
            )
        if cancellation is not None:
            cancellation.raise_if_cancelled()

        limit = timeout
        if cancellation is not None:
            remaining = cancellation.remaining()
            if remaining is not None:
                limit = remaining if limit is None else min(limit, remaining)

        with self._lock:
            self._refill(self._clock())
            deficit = tokens - self._tokens
            wait_seconds = deficit / self.refill_rate if deficit > 0 else 0.0
            if limit is not None and wait_seconds > limit:
                raise RateLimitTimeout(
                    f"Acquiring {tokens} token(s) needs {wait_seconds:.3f}s, "
                    f"more than the {limit:.3f}s allowed",
                    requested=tokens,
                    wait_seconds=wait_seconds,
                )
            self._tokens -= tokens

        if wait_seconds <= 0:
            return 0.0

        logger.debug(
            "Waiting for rate limiter tokens",
            extra={
                "event": "rate_limiter.wait",
                "tokens": tokens,
                "wait_seconds": round(wait_seconds, 4),
            },
        )

        if cancellation is None:
            threading.Event().wait(wait_seconds)
            return wait_seconds

        if cancellation.wait(wait_seconds):
            self._refund(tokens)
            raise DeliveryCancelledError(
                f"Rate limiter wait interrupted ({cancellation.reason})"
            )
        return wait_seconds

    def _refund(self, tokens: float) -> None:
        with self._lock:
            self._refill(self._clock())
            self._tokens = min(float(self.capacity), self._tokens + tokens)
