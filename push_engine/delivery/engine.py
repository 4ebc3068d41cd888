"""Caller-facing delivery engine."""

import dataclasses
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from push_engine.config.models import EngineConfig
from push_engine.domain.models import (
    Batch,
    BatchItem,
    DeliveryOutcome,
    DeliveryReport,
    NotificationPayload,
    Recipient,
)
from push_engine.logging import get_logger
from push_engine.logging.context import bind_log_context
from push_engine.providers.base import DeliveryProvider

from .aggregator import ResultAggregator
from .cancellation import CancellationToken
from .circuit_breaker import CircuitBreaker
from .exceptions import RequestValidationError
from .lifecycle import RegistrationLifecycleManager, RegistryUpdater
from .planner import BatchPlanner
from .rate_limiter import TokenBucketRateLimiter
from .retry import RetryScheduler
from .validator import RegistrationValidator
from .workers import DispatchWorkerPool

logger = get_logger(__name__, component="engine")

RecipientInput = Union[Recipient, str, Dict[str, Any]]
PayloadInput = Union[NotificationPayload, Dict[str, Any]]


@dataclass(frozen=True)
class SendOptions:
    """Per-call overrides for DeliveryEngine.send().

    Unset fields fall back to the engine defaults.

    Attributes:
        max_retries: Retry rounds for transient failures
        worker_count: Concurrent provider calls
        deadline: Time budget for the whole call, in seconds
        batch_size: Recipients per provider call (capped at the provider maximum)
        request_id: Correlation id for logs and the report
        cancellation: Caller-held token; cancelling it stops the call
    """

    max_retries: Optional[int] = None
    worker_count: Optional[int] = None
    deadline: Optional[float] = None
    batch_size: Optional[int] = None
    request_id: Optional[str] = None
    cancellation: Optional[CancellationToken] = None


class DeliveryEngine:
    """Fans one payload out to many recipients through a provider.

    ``send()`` is synchronous for the caller: it validates, batches,
    dispatches rounds on a worker pool, retries transient failures, and
    returns a DeliveryReport covering every input recipient. Only malformed
    requests raise; per-recipient failures are reported.

    The rate limiter and circuit breaker are engine-wide and shared by all
    calls; everything else is scoped to one call.
    """

    def __init__(
        self,
        provider: DeliveryProvider,
        rate_limiter: TokenBucketRateLimiter,
        circuit_breaker: CircuitBreaker,
        validator: Optional[RegistrationValidator] = None,
        lifecycle: Optional[RegistrationLifecycleManager] = None,
        worker_count: int = 4,
        max_retries: int = 3,
        batch_size: Optional[int] = None,
        deadline: Optional[float] = None,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter: float = 0.5,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider = provider
        self.rate_limiter = rate_limiter
        self.circuit_breaker = circuit_breaker
        self.validator = validator or RegistrationValidator()
        self.lifecycle = lifecycle
        self.planner = BatchPlanner()
        self.worker_count = worker_count
        self.max_retries = max_retries
        self.batch_size = batch_size
        self.deadline = deadline
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._rng = rng or random.Random()
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        provider: DeliveryProvider,
        updater: Optional[RegistryUpdater] = None,
        rng: Optional[random.Random] = None,
    ) -> "DeliveryEngine":
        """Build an engine, its rate limiter and its breaker from configuration."""
        lifecycle = None
        if config.registry.enabled:
            lifecycle = RegistrationLifecycleManager(updater=updater, dry_run=config.registry.dry_run)

        return cls(
            provider=provider,
            rate_limiter=TokenBucketRateLimiter(
                capacity=config.rate_limit.capacity,
                refill_rate=config.rate_limit.refill_rate,
                initial_tokens=config.rate_limit.initial_tokens,
            ),
            circuit_breaker=CircuitBreaker(
                threshold=config.circuit_breaker.threshold,
                window_seconds=config.circuit_breaker.window_seconds,
                cooldown_seconds=config.circuit_breaker.cooldown_seconds,
                name=provider.name,
            ),
            validator=RegistrationValidator(
                min_length=config.validation.min_length,
                max_length=config.validation.max_length,
            ),
            lifecycle=lifecycle,
            worker_count=config.dispatch.worker_count,
            max_retries=config.dispatch.max_retries,
            batch_size=config.dispatch.batch_size,
            deadline=config.dispatch.deadline_seconds,
            base_delay=config.retry.base_delay,
            max_delay=config.retry.max_delay,
            jitter=config.retry.jitter,
            rng=rng,
        )

    def effective_batch_size(self, requested: Optional[int] = None) -> int:
        """Batch size for a call: the request's or engine's, capped by the provider."""
        size = requested or self.batch_size or self.provider.max_batch_size
        return min(size, self.provider.max_batch_size)

    def send(
        self,
        recipients: Iterable[RecipientInput],
        payload: PayloadInput,
        options: Optional[SendOptions] = None,
    ) -> DeliveryReport:
        """Deliver ``payload`` to every recipient.

        Args:
            recipients: Recipients, bare identifier strings, or mappings
            payload: NotificationPayload or an equivalent mapping
            options: Per-call overrides

        Returns:
            DeliveryReport with exactly one entry per input recipient

        Raises:
            RequestValidationError: Empty recipient list, malformed recipient
                or payload, payload above the provider ceiling, bad options.
                Raised before any provider call.
        """
        options = options or SendOptions()
        request_id = options.request_id or uuid4().hex[:12]

        with bind_log_context(request_id=request_id):
            members = self._coerce_recipients(recipients)
            message = self._coerce_payload(payload)
            self._check_request(members, message, options)

            max_retries = self.max_retries if options.max_retries is None else options.max_retries
            worker_count = options.worker_count or self.worker_count
            deadline = options.deadline if options.deadline is not None else self.deadline
            batch_size = self.effective_batch_size(options.batch_size)

            if options.cancellation is not None:
                token = options.cancellation.child(deadline)
            else:
                token = CancellationToken(deadline, clock=self._clock)

            items = [BatchItem(position=i, recipient=r) for i, r in enumerate(members)]
            aggregator = ResultAggregator(items, clock=self._clock)

            logger.info(
                f"Delivery started for {len(items)} recipients",
                extra={
                    "event": "engine.send.started",
                    "recipient_count": len(items),
                    "batch_size": batch_size,
                    "worker_count": worker_count,
                    "max_retries": max_retries,
                    "deadline_seconds": deadline,
                },
            )

            valid, rejected = self.validator.validate(items)
            aggregator.record_rejections(rejected)
            if rejected:
                logger.info(
                    f"Rejected {len(rejected)} malformed identifiers",
                    extra={"event": "engine.validation.rejected", "rejected_count": len(rejected)},
                )

            scheduler = RetryScheduler(
                max_retries=max_retries,
                base_delay=self.base_delay,
                max_delay=self.max_delay,
                jitter=self.jitter,
                planner=self.planner,
                rng=self._rng,
            )
            pool = DispatchWorkerPool(
                self.provider,
                self.rate_limiter,
                self.circuit_breaker,
                worker_count=worker_count,
                clock=self._clock,
            )

            budget_spent = self._run_rounds(
                pool,
                scheduler,
                aggregator,
                self.planner.plan(valid, batch_size, message, attempt=0, prefix=request_id),
                message,
                batch_size,
                request_id,
                token,
            )

            # a spent retry budget is terminal even if the deadline passed meanwhile
            cancel_pending = token.cancelled and not budget_spent
            cancelled_call = token.cancelled and (
                (cancel_pending and aggregator.pending_count > 0)
                or aggregator.count(DeliveryOutcome.CANCELLED) > 0
            )
            exhausted = aggregator.finalize_pending(
                DeliveryOutcome.CANCELLED if cancel_pending else DeliveryOutcome.FAILED_AFTER_RETRIES
            )
            if exhausted and not cancel_pending:
                logger.warning(
                    f"{exhausted} recipients failed after {max_retries} retries",
                    extra={"event": "retry.exhausted", "recipient_count": exhausted},
                )

            report = aggregator.build_report(request_id, cancelled_call=cancelled_call)
            if self.lifecycle is not None:
                report = dataclasses.replace(report, reconciliation=self.lifecycle.reconcile(report))

            logger.info(
                "Delivery finished",
                extra={
                    "event": "engine.send.completed",
                    "total": report.total,
                    "delivered": report.delivered,
                    "invalid": report.invalid,
                    "moved": report.moved,
                    "failed_after_retries": report.failed_after_retries,
                    "fatal": report.fatal,
                    "cancelled": report.cancelled,
                    "retry_rounds": report.retry_rounds,
                    "elapsed_seconds": round(report.elapsed_seconds, 3),
                    "cancelled_call": report.cancelled_call,
                },
            )
            return report

    def _run_rounds(
        self,
        pool: DispatchWorkerPool,
        scheduler: RetryScheduler,
        aggregator: ResultAggregator,
        batches: List[Batch],
        payload: NotificationPayload,
        batch_size: int,
        request_id: str,
        token: CancellationToken,
    ) -> bool:
        """Dispatch rounds until nothing is transient, retries run out, or cancellation.

        Returns:
            True when recipients are still transient and the retry budget is spent
        """
        rounds_done = 0
        while batches:
            transient = []
            retry_after = None
            for result in pool.dispatch(batches, token):
                transient.extend(aggregator.add(result))
                if result.retry_after is not None:
                    retry_after = max(retry_after or 0.0, result.retry_after)

            if not transient:
                return False
            if scheduler.exhausted(rounds_done):
                return True
            if token.cancelled:
                return False

            plan = scheduler.schedule_retries(
                transient, rounds_done, payload, batch_size, prefix=request_id, retry_after=retry_after
            )

            logger.info(
                f"Retrying {plan.recipient_count} recipients in {plan.delay_seconds:.2f}s",
                extra={
                    "event": "retry.round.scheduled",
                    "round": plan.round,
                    "recipient_count": plan.recipient_count,
                    "batch_count": len(plan.batches),
                    "delay_seconds": round(plan.delay_seconds, 3),
                },
            )
            if token.wait(plan.delay_seconds):
                logger.info(
                    "Retry round abandoned, delivery cancelled",
                    extra={"event": "retry.round.cancelled", "round": plan.round, "reason": token.reason},
                )
                return False

            aggregator.start_retry_round()
            rounds_done = plan.round
            batches = plan.batches
        return False

    def _coerce_recipients(self, recipients: Iterable[RecipientInput]) -> List[Recipient]:
        members = []
        errors = []
        for index, value in enumerate(recipients):
            try:
                members.append(Recipient.coerce(value))
            except ValidationError as e:
                errors.append(f"recipient {index}: {e.errors()[0]['msg']}")
        if errors:
            raise RequestValidationError("Malformed recipients", errors=errors)
        return members

    def _coerce_payload(self, payload: PayloadInput) -> NotificationPayload:
        if isinstance(payload, NotificationPayload):
            return payload
        try:
            return NotificationPayload.model_validate(payload)
        except ValidationError as e:
            raise RequestValidationError(
                "Malformed payload",
                errors=[
                    f"{'.'.join(str(part) for part in error['loc']) or 'payload'}: {error['msg']}"
                    for error in e.errors()
                ],
            ) from e

    def _check_request(self, members: List[Recipient], payload: NotificationPayload, options: SendOptions) -> None:
        if not members:
            raise RequestValidationError("Recipient list is empty")

        size = payload.size_bytes()
        if size > self.provider.max_payload_bytes:
            raise RequestValidationError(
                f"Payload is {size} bytes, provider '{self.provider.name}' accepts at most "
                f"{self.provider.max_payload_bytes}"
            )

        errors = []
        if options.max_retries is not None and options.max_retries < 0:
            errors.append(f"max_retries must be >= 0, got {options.max_retries}")
        if options.worker_count is not None and options.worker_count < 1:
            errors.append(f"worker_count must be >= 1, got {options.worker_count}")
        if options.batch_size is not None and options.batch_size < 1:
            errors.append(f"batch_size must be >= 1, got {options.batch_size}")
        if options.deadline is not None and options.deadline < 0:
            errors.append(f"deadline must be >= 0, got {options.deadline}")
        if errors:
            raise RequestValidationError("Invalid send options", errors=errors)

    def close(self) -> None:
        self.provider.close()
