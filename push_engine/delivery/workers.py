"""Bounded-concurrency dispatch of batches to the provider."""

import queue
import threading
import time
from typing import Callable, List, Optional, Sequence, Tuple

from push_engine.config.exceptions import ConfigurationError
from push_engine.domain.models import Batch, BatchResult, DeliveryOutcome, RecipientOutcome
from push_engine.logging import get_logger
from push_engine.logging.context import bind_log_context, copy_log_context
from push_engine.providers.base import DeliveryProvider, ProviderResponse
from push_engine.providers.exceptions import (
    FATAL_PROVIDER_ERRORS,
    ProviderAuthError,
    ProviderResponseError,
    ProviderUnavailableError,
)

from .cancellation import REASON_DEADLINE, CancellationToken
from .circuit_breaker import CircuitBreaker
from .classification import (
    CODE_CIRCUIT_OPEN,
    CODE_NETWORK,
    CODE_RESPONSE_MISMATCH,
    classify_response,
    is_transient_failure,
    mark_all,
)
from .exceptions import CircuitOpenError, DeliveryCancelledError, RateLimitTimeout
from .rate_limiter import TokenBucketRateLimiter

logger = get_logger(__name__, component="dispatch")

CODE_RATE_LIMIT_TIMEOUT = "rate_limit_timeout"
CODE_PAYLOAD_REJECTED = "payload_rejected"
CODE_AUTH_FAILED = "auth_failed"
CODE_PROVIDER_EXCEPTION = "provider_exception"

_Sent = Tuple[ProviderResponse, List[RecipientOutcome]]


class DispatchWorkerPool:
    """Fixed set of worker threads draining a queue of batches.

    Each worker takes the next batch, acquires one rate-limiter token, and
    sends the batch through the circuit breaker. Every batch handed to
    ``dispatch`` comes back with exactly one outcome per recipient, even when
    cancellation stops it from being sent.

    The pool holds no state between dispatch() calls; the rate limiter and
    breaker are shared objects owned by the engine.
    """

    def __init__(
        self,
        provider: DeliveryProvider,
        rate_limiter: TokenBucketRateLimiter,
        circuit_breaker: CircuitBreaker,
        worker_count: int = 4,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if worker_count < 1:
            raise ConfigurationError(f"worker_count must be at least 1, got {worker_count}")
        self.provider = provider
        self.rate_limiter = rate_limiter
        self.circuit_breaker = circuit_breaker
        self.worker_count = worker_count
        self._clock = clock

    def dispatch(
        self,
        batches: Sequence[Batch],
        cancellation: Optional[CancellationToken] = None,
    ) -> List[BatchResult]:
        """Send batches concurrently and wait for all of them.

        Args:
            batches: Batches of one dispatch round
            cancellation: Stops batches that have not started yet

        Returns:
            One BatchResult per batch, in the order given
        """
        if not batches:
            return []

        work: "queue.Queue[Tuple[int, Batch]]" = queue.Queue()
        for index, batch in enumerate(batches):
            work.put((index, batch))

        results: List[Optional[BatchResult]] = [None] * len(batches)
        threads = []
        for n in range(min(self.worker_count, len(batches))):
            # one context copy per thread; a Context cannot be entered twice at once
            context = copy_log_context()
            thread = threading.Thread(
                target=context.run,
                args=(self._worker_loop, work, results, cancellation),
                name=f"dispatch-worker-{n}",
                daemon=True,
            )
            threads.append(thread)
            thread.start()

        for thread in threads:
            thread.join()

        return results

    def _worker_loop(
        self,
        work: "queue.Queue[Tuple[int, Batch]]",
        results: List[Optional[BatchResult]],
        cancellation: Optional[CancellationToken],
    ) -> None:
        while True:
            try:
                index, batch = work.get_nowait()
            except queue.Empty:
                return
            results[index] = self.dispatch_batch(batch, cancellation)

    def dispatch_batch(
        self, batch: Batch, cancellation: Optional[CancellationToken] = None
    ) -> BatchResult:
        """Send one batch and classify the outcome for each recipient."""
        with bind_log_context(batch_id=batch.batch_id, attempt=batch.attempt):
            if cancellation is not None and cancellation.cancelled:
                return self._skipped(batch, cancellation.reason)

            try:
                self.rate_limiter.acquire(1, cancellation=cancellation)
            except RateLimitTimeout:
                # no token can arrive before the deadline
                cancellation.cancel(REASON_DEADLINE)
                return self._skipped(batch, CODE_RATE_LIMIT_TIMEOUT)
            except DeliveryCancelledError:
                return self._skipped(batch, cancellation.reason)

            logger.debug(
                "Dispatching batch",
                extra={"event": "dispatch.batch.started", "batch_size": len(batch)},
            )

            try:
                response, outcomes = self.circuit_breaker.call(
                    self._send,
                    batch,
                    failure_predicate=lambda sent: is_transient_failure(sent[1]),
                    ignored_exceptions=FATAL_PROVIDER_ERRORS,
                )
            except CircuitOpenError as e:
                logger.warning(
                    "Batch not sent, circuit open",
                    extra={
                        "event": "dispatch.batch.rejected",
                        "batch_size": len(batch),
                        "retry_in": round(e.retry_in, 3),
                    },
                )
                return self._result(
                    batch,
                    mark_all(batch, DeliveryOutcome.TRANSIENT, CODE_CIRCUIT_OPEN),
                    False,
                    retry_after=e.retry_in,
                )
            except FATAL_PROVIDER_ERRORS as e:
                code = CODE_AUTH_FAILED if isinstance(e, ProviderAuthError) else CODE_PAYLOAD_REJECTED
                logger.error(
                    f"Provider refused batch: {e}",
                    extra={"event": "dispatch.batch.fatal", "error_type": type(e).__name__},
                )
                return self._result(
                    batch, mark_all(batch, DeliveryOutcome.FATAL, code), True, error=str(e)
                )
            except ProviderUnavailableError as e:
                logger.warning(
                    f"Provider unavailable: {e}",
                    extra={
                        "event": "dispatch.batch.failed",
                        "status_code": e.status_code,
                        "retry_after": e.retry_after,
                    },
                )
                return self._result(
                    batch,
                    mark_all(batch, DeliveryOutcome.TRANSIENT, CODE_NETWORK),
                    True,
                    retry_after=e.retry_after,
                    error=str(e),
                )
            except ProviderResponseError as e:
                logger.warning(
                    f"Unusable provider response: {e}",
                    extra={"event": "dispatch.batch.failed", "error_type": type(e).__name__},
                )
                return self._result(
                    batch, mark_all(batch, DeliveryOutcome.TRANSIENT, CODE_RESPONSE_MISMATCH), True, error=str(e)
                )
            except Exception as e:
                logger.exception(
                    "Unexpected error from provider",
                    extra={"event": "dispatch.batch.failed", "error_type": type(e).__name__},
                )
                return self._result(
                    batch, mark_all(batch, DeliveryOutcome.TRANSIENT, CODE_PROVIDER_EXCEPTION), True, error=str(e)
                )

            result = self._result(batch, outcomes, True, retry_after=response.retry_after)
            logger.info(
                "Batch dispatched",
                extra={
                    "event": "dispatch.batch.completed",
                    "batch_size": len(batch),
                    "delivered": len(result.with_outcome(DeliveryOutcome.DELIVERED)),
                    "invalid": len(result.with_outcome(DeliveryOutcome.INVALID_RECIPIENT)),
                    "moved": len(result.with_outcome(DeliveryOutcome.RECIPIENT_MOVED)),
                    "transient": len(result.with_outcome(DeliveryOutcome.TRANSIENT)),
                    "fatal": len(result.with_outcome(DeliveryOutcome.FATAL)),
                },
            )
            return result

    def _send(self, batch: Batch) -> _Sent:
        response = self.provider.deliver(batch)
        try:
            outcomes = classify_response(batch, response)
        except ValueError as e:
            raise ProviderResponseError(str(e)) from e
        return response, outcomes

    def _skipped(self, batch: Batch, code: Optional[str]) -> BatchResult:
        logger.info(
            "Batch not dispatched, delivery cancelled",
            extra={"event": "dispatch.batch.cancelled", "batch_size": len(batch), "reason": code},
        )
        return self._result(batch, mark_all(batch, DeliveryOutcome.CANCELLED, code), False)

    def _result(
        self,
        batch: Batch,
        outcomes: List[RecipientOutcome],
        dispatched: bool,
        retry_after: Optional[float] = None,
        error: Optional[str] = None,
    ) -> BatchResult:
        return BatchResult(
            batch=batch,
            outcomes=tuple(outcomes),
            dispatched=dispatched,
            completed_at=self._clock(),
            retry_after=retry_after,
            error=error,
        )
