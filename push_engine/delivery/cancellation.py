"""Cancellation and deadline propagation for one send() call."""

import threading
import time
import weakref
from typing import Callable, Optional

from .exceptions import DeliveryCancelledError

REASON_CANCELLED = "cancelled"
REASON_DEADLINE = "deadline_exceeded"


class CancellationToken:
    """Cooperative cancellation signal with an optional deadline.

    Workers check ``cancelled`` before starting a batch, and every blocking
    wait in the engine (rate limiter, retry backoff) goes through ``wait`` so
    that cancelling or running out of time wakes it immediately. A deadline
    that elapses behaves exactly like an explicit ``cancel()``.

    Attributes:
        reason: "cancelled", "deadline_exceeded", or None while active
    """

    def __init__(
        self,
        deadline_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create a token.

        Args:
            deadline_seconds: Time budget from now; None for no deadline
            clock: Monotonic clock (injectable for tests)
        """
        if deadline_seconds is not None and deadline_seconds < 0:
            raise ValueError(f"deadline_seconds must be non-negative, got {deadline_seconds}")
        self._clock = clock
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._deadline = clock() + deadline_seconds if deadline_seconds is not None else None
        self._children: "weakref.WeakSet[CancellationToken]" = weakref.WeakSet()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = REASON_CANCELLED) -> None:
        """Request cancellation. Idempotent; the first reason wins.

        Tokens created with ``child()`` are cancelled too.
        """
        with self._lock:
            if self.reason is None:
                self.reason = reason
            children = list(self._children)
        self._event.set()
        for child in children:
            child.cancel(self.reason)

    def child(self, deadline_seconds: Optional[float] = None) -> "CancellationToken":
        """Derive a token that is cancelled with this one.

        The child's deadline is the earlier of ``deadline_seconds`` and this
        token's own deadline.
        """
        remaining = self.remaining()
        if remaining is not None:
            deadline_seconds = remaining if deadline_seconds is None else min(deadline_seconds, remaining)
        token = CancellationToken(deadline_seconds, clock=self._clock)
        with self._lock:
            if self.reason is None:
                self._children.add(token)
                return token
        token.cancel(self.reason)
        return token

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and self._clock() >= self._deadline:
            self.cancel(REASON_DEADLINE)
            return True
        return False

    @property
    def deadline_exceeded(self) -> bool:
        return self.cancelled and self.reason == REASON_DEADLINE

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` elapses.

        The wait never extends past the deadline.

        Returns:
            True if the token is cancelled when the wait ends
        """
        remaining = self.remaining()
        if remaining is not None:
            timeout = remaining if timeout is None else min(timeout, remaining)
        if timeout is None or timeout > 0:
            self._event.wait(timeout)
        return self.cancelled

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise DeliveryCancelledError(f"Delivery {self.reason}")
