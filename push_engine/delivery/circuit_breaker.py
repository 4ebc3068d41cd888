"""Circuit breaker isolating the engine from a degraded provider."""

import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Optional, Tuple, Type

from push_engine.config.exceptions import ConfigurationError
from push_engine.logging import get_logger

from .exceptions import CircuitOpenError

logger = get_logger(__name__, component="circuit_breaker")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of the breaker, for logs and reports."""

    name: str
    state: CircuitState
    failures_in_window: int
    threshold: int
    retry_in: float
    times_opened: int


class CircuitBreaker:
    """Closed / Open / HalfOpen state machine guarding provider calls.

    - Closed: calls pass. Failures are timestamped; once ``threshold`` of them
      fall within the sliding ``window_seconds`` the circuit opens.
    - Open: calls fail fast with CircuitOpenError until ``cooldown_seconds``
      have passed since opening.
    - HalfOpen: exactly one probe call is let through. Success closes the
      circuit and clears the failure history; failure re-opens it.

    All transitions happen under one lock. The guarded call itself runs
    outside the lock.
    """

    def __init__(
        self,
        threshold: int = 5,
        window_seconds: float = 60.0,
        cooldown_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "provider",
    ) -> None:
        if threshold < 1:
            raise ConfigurationError(f"Breaker threshold must be at least 1, got {threshold}")
        if window_seconds <= 0 or cooldown_seconds <= 0:
            raise ConfigurationError("Breaker window and cooldown must be positive")

        self.threshold = threshold
        self.window_seconds = window_seconds
        self.cooldown_seconds = cooldown_seconds
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures: Deque[float] = deque()
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False
        self._times_opened = 0

    # -- state helpers (lock held) -----------------------------------------

    def _prune(self, now: float) -> None:
        horizon = now - self.window_seconds
        while self._failures and self._failures[0] <= horizon:
            self._failures.popleft()

    def _advance(self, now: float) -> None:
        if self._state is CircuitState.OPEN and now - self._opened_at >= self.cooldown_seconds:
            self._state = CircuitState.HALF_OPEN
            self._probe_in_flight = False
            logger.info(
                "Circuit half-open, next call is a probe",
                extra={"event": "breaker.half_open", "breaker": self.name},
            )

    def _open(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._probe_in_flight = False
        self._times_opened += 1
        logger.warning(
            "Circuit opened",
            extra={
                "event": "breaker.opened",
                "breaker": self.name,
                "failures_in_window": len(self._failures),
                "cooldown_seconds": self.cooldown_seconds,
            },
        )

    def _retry_in(self, now: float) -> float:
        if self._state is not CircuitState.OPEN:
            return 0.0
        return max(0.0, self.cooldown_seconds - (now - self._opened_at))

    # -- public API ---------------------------------------------------------

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._advance(self._clock())
            return self._state

    def snapshot(self) -> BreakerSnapshot:
        with self._lock:
            now = self._clock()
            self._advance(now)
            self._prune(now)
            return BreakerSnapshot(
                name=self.name,
                state=self._state,
                failures_in_window=len(self._failures),
                threshold=self.threshold,
                retry_in=self._retry_in(now),
                times_opened=self._times_opened,
            )

    def reset(self) -> None:
        """Force the circuit closed and forget past failures (operator action)."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures.clear()
            self._opened_at = None
            self._probe_in_flight = False
        logger.info("Circuit reset", extra={"event": "breaker.reset", "breaker": self.name})

    def before_call(self) -> None:
        """Admit or reject a call.

        Raises:
            CircuitOpenError: While open, or while a half-open probe is running
        """
        with self._lock:
            now = self._clock()
            self._advance(now)
            if self._state is CircuitState.CLOSED:
                return
            if self._state is CircuitState.HALF_OPEN and not self._probe_in_flight:
                self._probe_in_flight = True
                return
            retry_in = self._retry_in(now)

        logger.debug(
            "Call rejected by open circuit",
            extra={"event": "breaker.rejected", "breaker": self.name, "retry_in": round(retry_in, 3)},
        )
        raise CircuitOpenError(
            f"Circuit '{self.name}' is open; retry in {retry_in:.1f}s", retry_in=retry_in
        )

    def record_success(self) -> None:
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                self._failures.clear()
                self._opened_at = None
                self._probe_in_flight = False
                logger.info(
                    "Circuit closed after successful probe",
                    extra={"event": "breaker.closed", "breaker": self.name},
                )

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            if self._state is CircuitState.HALF_OPEN:
                self._open(now)
                return
            if self._state is CircuitState.OPEN:
                # a call admitted before the circuit opened; already counted as down
                return
            self._failures.append(now)
            self._prune(now)
            if len(self._failures) >= self.threshold:
                self._open(now)

    def call(
        self,
        func: Callable[..., Any],
        *args: Any,
        failure_predicate: Optional[Callable[[Any], bool]] = None,
        ignored_exceptions: Tuple[Type[BaseException], ...] = (),
        **kwargs: Any,
    ) -> Any:
        """Run ``func`` through the breaker.

        Args:
            func: The guarded call
            failure_predicate: Decides whether a returned value is a failure;
                by default every return is a success
            ignored_exceptions: Exceptions that prove the dependency answered
                (recorded as success, then re-raised)

        Returns:
            Whatever func returns

        Raises:
            CircuitOpenError: If the call was not admitted
            Exception: Anything func raises
        """
        self.before_call()
        try:
            result = func(*args, **kwargs)
        except ignored_exceptions:
            self.record_success()
            raise
        except Exception:
            self.record_failure()
            raise

        if failure_predicate is not None and failure_predicate(result):
            self.record_failure()
        else:
            self.record_success()
        return result
