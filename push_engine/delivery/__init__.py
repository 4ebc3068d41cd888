"""Batch push delivery: validation, batching, dispatch, retry and reconciliation."""

from .aggregator import ResultAggregator
from .cancellation import CancellationToken
from .circuit_breaker import BreakerSnapshot, CircuitBreaker, CircuitState
from .classification import CLASSIFICATION_TABLE, classify, classify_response
from .engine import DeliveryEngine, SendOptions
from .exceptions import (
    CircuitOpenError,
    DeliveryCancelledError,
    DeliveryError,
    RateLimitTimeout,
    RequestValidationError,
)
from .lifecycle import RegistrationLifecycleManager, RegistryUpdater
from .planner import BatchPlanner
from .rate_limiter import TokenBucketRateLimiter
from .retry import RetryPlan, RetryScheduler
from .validator import RegistrationValidator, RejectedRecipient
from .workers import DispatchWorkerPool

__all__ = [
    # Engine
    "DeliveryEngine",
    "SendOptions",
    "CancellationToken",
    # Components
    "RegistrationValidator",
    "RejectedRecipient",
    "BatchPlanner",
    "TokenBucketRateLimiter",
    "CircuitBreaker",
    "CircuitState",
    "BreakerSnapshot",
    "DispatchWorkerPool",
    "RetryScheduler",
    "RetryPlan",
    "ResultAggregator",
    "RegistrationLifecycleManager",
    "RegistryUpdater",
    # Classification
    "CLASSIFICATION_TABLE",
    "classify",
    "classify_response",
    # Exceptions
    "DeliveryError",
    "RequestValidationError",
    "RateLimitTimeout",
    "CircuitOpenError",
    "DeliveryCancelledError",
]
