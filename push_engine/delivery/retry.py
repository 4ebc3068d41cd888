"""Retry rounds for transient per-recipient failures."""

import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

from push_engine.config.exceptions import ConfigurationError
from push_engine.domain.models import Batch, BatchItem, NotificationPayload

from .planner import BatchPlanner


@dataclass(frozen=True)
class RetryPlan:
    """The next dispatch round: what to send and how long to wait first.

    Attributes:
        round: Retry round number, 1 for the first retry
        batches: Re-planned batches of the transient recipients
        delay_seconds: Backoff to apply before dispatching
    """

    round: int
    batches: List[Batch]
    delay_seconds: float

    @property
    def recipient_count(self) -> int:
        return sum(len(batch) for batch in self.batches)


class RetryScheduler:
    """Plans retry rounds with capped exponential backoff and jitter.

    Performs no I/O and never sleeps: it returns the next round's batches and
    the delay, and the caller decides how to wait.

    Delay before retry round k (k = 0 for the first retry) is
    ``min(base_delay * 2**k, max_delay) + U[0, jitter)``. A provider
    Retry-After hint raises that value when it is larger.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter: float = 0.5,
        planner: Optional[BatchPlanner] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        if max_retries < 0:
            raise ConfigurationError(f"max_retries cannot be negative, got {max_retries}")
        if base_delay < 0 or max_delay < 0 or jitter < 0:
            raise ConfigurationError("Retry delays and jitter cannot be negative")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.planner = planner or BatchPlanner()
        self._rng = rng or random.Random()

    def backoff_delay(self, k: int, retry_after: Optional[float] = None) -> float:
        """Delay before retry round k (0-based)."""
        delay = min(self.base_delay * (2 ** k), self.max_delay)
        if self.jitter > 0:
            delay += self._rng.random() * self.jitter
        if retry_after is not None and retry_after > delay:
            delay = retry_after
        return delay

    def exhausted(self, rounds_done: int) -> bool:
        """True when no retry round is left after ``rounds_done`` of them."""
        return rounds_done >= self.max_retries

    def schedule_retries(
        self,
        transient: Sequence[BatchItem],
        rounds_done: int,
        payload: NotificationPayload,
        max_batch_size: int,
        prefix: str = "batch",
        retry_after: Optional[float] = None,
    ) -> Optional[RetryPlan]:
        """Re-batch transient recipients for another round.

        Args:
            transient: Recipients whose last attempt was TRANSIENT, in order
            rounds_done: Retry rounds already performed for this call
            payload: Payload shared by the batches
            max_batch_size: Upper bound on items per batch
            prefix: Batch id prefix
            retry_after: Largest provider back-off hint from the last round

        Returns:
            RetryPlan, or None when nothing is left to retry or the retry
            budget is spent (remaining recipients are then terminal)
        """
        if not transient or self.exhausted(rounds_done):
            return None

        batches = self.planner.plan(
            list(transient), max_batch_size, payload, attempt=rounds_done + 1, prefix=prefix
        )
        return RetryPlan(
            round=rounds_done + 1,
            batches=batches,
            delay_seconds=self.backoff_delay(rounds_done, retry_after),
        )
