"""Shared fixtures for push delivery engine tests."""

import pytest

from push_engine.delivery.circuit_breaker import CircuitBreaker
from push_engine.delivery.engine import DeliveryEngine
from push_engine.delivery.rate_limiter import TokenBucketRateLimiter
from push_engine.domain.models import BatchItem, NotificationPayload, Recipient
from push_engine.logging.context import clear_log_context

from tests.helpers import ScriptedProvider, token_id


@pytest.fixture(autouse=True)
def clean_log_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def payload():
    return NotificationPayload(title="Order shipped", body="Your order is on its way", data={"order_id": "42"})


@pytest.fixture
def make_items():
    """Factory for position-tagged recipients."""

    def _make(count, start=0):
        return [BatchItem(position=i, recipient=Recipient(registration_id=token_id(i))) for i in range(start, start + count)]

    return _make


@pytest.fixture
def fast_limiter():
    """A limiter that never makes a test wait noticeably."""
    return TokenBucketRateLimiter(capacity=1000, refill_rate=10000.0, initial_tokens=1000)


@pytest.fixture
def make_engine(fast_limiter):
    """Factory for an engine with zero backoff around a given provider."""

    def _make(provider=None, **kwargs):
        provider = provider or ScriptedProvider()
        kwargs.setdefault("rate_limiter", fast_limiter)
        kwargs.setdefault("circuit_breaker", CircuitBreaker(threshold=100, window_seconds=60, cooldown_seconds=30))
        kwargs.setdefault("base_delay", 0.0)
        kwargs.setdefault("max_delay", 0.0)
        kwargs.setdefault("jitter", 0.0)
        return DeliveryEngine(provider, **kwargs)

    return _make
