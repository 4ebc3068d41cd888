"""Accumulation of batch results into the final DeliveryReport."""

import time
from collections import Counter
from typing import Callable, Dict, List, Optional, Sequence

from push_engine.domain.models import (
    BatchItem,
    BatchResult,
    DeliveryOutcome,
    DeliveryReport,
    RecipientOutcome,
    RecipientResult,
)
from push_engine.logging import get_logger
from push_engine.utils.timestamps import utc_now

from .validator import RejectedRecipient

logger = get_logger(__name__, component="aggregator")


class ResultAggregator:
    """Tracks the latest outcome of every input recipient across rounds.

    Built once per send() call with every position-tagged input recipient.
    TRANSIENT outcomes stay pending until a later round settles them or
    ``finalize_pending`` turns them terminal; terminal outcomes are never
    overwritten.
    """

    def __init__(self, items: Sequence[BatchItem], clock: Callable[[], float] = time.monotonic) -> None:
        self._items: Dict[int, BatchItem] = {item.position: item for item in items}
        self._clock = clock
        self._final: Dict[int, RecipientResult] = {}
        self._pending: Dict[int, RecipientOutcome] = {}
        self._attempts: Counter = Counter()
        self._started = clock()
        self._last_completion: Optional[float] = None
        self.started_at = utc_now()
        self.retry_rounds = 0
        self.retry_attempts = 0

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def count(self, outcome: DeliveryOutcome) -> int:
        return sum(1 for result in self._final.values() if result.outcome is outcome)

    def record_rejections(self, rejected: Sequence[RejectedRecipient]) -> None:
        """Record validator rejections as INVALID_RECIPIENT (no provider call)."""
        for entry in rejected:
            self._settle(
                RecipientResult(
                    position=entry.item.position,
                    recipient=entry.item.recipient,
                    outcome=DeliveryOutcome.INVALID_RECIPIENT,
                    reason=entry.reason,
                )
            )

    def start_retry_round(self) -> None:
        self.retry_rounds += 1

    def add(self, result: BatchResult) -> List[BatchItem]:
        """Merge one batch result.

        Returns:
            Items of the batch that are still TRANSIENT, in batch order
        """
        if result.dispatched and result.batch.attempt > 0:
            self.retry_attempts += len(result.batch)
        if self._last_completion is None or result.completed_at > self._last_completion:
            self._last_completion = result.completed_at

        transient = []
        for outcome in result.outcomes:
            position = outcome.item.position
            if result.dispatched:
                self._attempts[position] += 1
            if outcome.outcome is DeliveryOutcome.TRANSIENT:
                self._pending[position] = outcome
                transient.append(outcome.item)
                continue
            self._pending.pop(position, None)
            self._settle(
                RecipientResult(
                    position=position,
                    recipient=outcome.item.recipient,
                    outcome=outcome.outcome,
                    attempts=self._attempts[position],
                    error_code=outcome.error_code,
                    canonical_id=outcome.canonical_id,
                )
            )
        return transient

    def finalize_pending(self, outcome: DeliveryOutcome) -> int:
        """Make every still-TRANSIENT recipient terminal with ``outcome``.

        Returns:
            Number of recipients finalized
        """
        pending = list(self._pending.values())
        self._pending.clear()
        for last in pending:
            position = last.item.position
            self._settle(
                RecipientResult(
                    position=position,
                    recipient=last.item.recipient,
                    outcome=outcome,
                    attempts=self._attempts[position],
                    error_code=last.error_code,
                )
            )
        return len(pending)

    def build_report(self, request_id: str, cancelled_call: bool = False) -> DeliveryReport:
        """Produce the immutable report, ordered by input position.

        Recipients that never received an outcome are reported CANCELLED.
        """
        if self._pending:
            self.finalize_pending(DeliveryOutcome.CANCELLED if cancelled_call else DeliveryOutcome.FAILED_AFTER_RETRIES)

        for position, item in self._items.items():
            if position not in self._final:
                self._settle(
                    RecipientResult(
                        position=position,
                        recipient=item.recipient,
                        outcome=DeliveryOutcome.CANCELLED,
                        attempts=self._attempts[position],
                    )
                )

        end = self._last_completion if self._last_completion is not None else self._clock()
        return DeliveryReport(
            request_id=request_id,
            results=tuple(self._final[position] for position in sorted(self._final)),
            started_at=self.started_at,
            finished_at=utc_now(),
            elapsed_seconds=max(0.0, end - self._started),
            retry_rounds=self.retry_rounds,
            retry_attempts=self.retry_attempts,
            cancelled_call=cancelled_call,
        )

    def _settle(self, result: RecipientResult) -> None:
        if result.position not in self._items:
            raise KeyError(f"Outcome for unknown recipient position {result.position}")
        if result.position in self._final:
            logger.error(
                "Ignoring second terminal outcome for a recipient",
                extra={
                    "event": "aggregator.duplicate_outcome",
                    "position": result.position,
                    "outcome": result.outcome.value,
                },
            )
            return
        self._final[result.position] = result
