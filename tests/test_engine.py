"""Unit tests for DeliveryEngine.send()."""

import time

import pytest

from push_engine.config.models import EngineConfig
from push_engine.delivery.cancellation import CancellationToken
from push_engine.delivery.circuit_breaker import CircuitBreaker, CircuitState
from push_engine.delivery.engine import DeliveryEngine, SendOptions
from push_engine.delivery.exceptions import RequestValidationError
from push_engine.delivery.lifecycle import RegistrationLifecycleManager
from push_engine.domain.models import DeliveryOutcome, NotificationPayload

from tests.helpers import InMemoryRegistryUpdater, ScriptedProvider, token_id

IDS = [token_id(i) for i in range(6)]


class TestRequestValidation:
    """Requests that are refused before any provider call."""

    def test_empty_recipient_list(self, make_engine, payload):
        provider = ScriptedProvider()

        with pytest.raises(RequestValidationError):
            make_engine(provider).send([], payload)

        assert provider.call_count == 0

    def test_payload_above_provider_ceiling(self, make_engine):
        provider = ScriptedProvider(max_payload_bytes=100)
        big = NotificationPayload(title="Big", body="x" * 200)

        with pytest.raises(RequestValidationError) as exc_info:
            make_engine(provider).send(IDS, big)

        assert "at most 100" in str(exc_info.value)
        assert provider.call_count == 0

    def test_payload_without_title_or_data(self, make_engine):
        with pytest.raises(RequestValidationError) as exc_info:
            make_engine().send(IDS, {"body": "no title"})

        assert exc_info.value.errors

    def test_malformed_recipient(self, make_engine, payload):
        with pytest.raises(RequestValidationError) as exc_info:
            make_engine().send([IDS[0], {"platform": "android"}], payload)

        assert "recipient 1" in exc_info.value.errors[0]

    @pytest.mark.parametrize(
        "options",
        [
            SendOptions(worker_count=0),
            SendOptions(max_retries=-1),
            SendOptions(batch_size=0),
            SendOptions(deadline=-1),
        ],
    )
    def test_invalid_options(self, make_engine, payload, options):
        with pytest.raises(RequestValidationError):
            make_engine().send(IDS, payload, options)


class TestOutcomes:
    """Per-recipient outcomes of a send() call."""

    def test_every_recipient_delivered_in_input_order(self, make_engine, payload):
        report = make_engine().send(IDS, payload, SendOptions(request_id="req-1"))

        assert report.request_id == "req-1"
        assert report.total == 6
        assert report.delivered == 6
        assert [r.registration_id for r in report.results] == IDS
        assert [r.position for r in report.results] == list(range(6))
        assert report.all_succeeded
        assert not report.cancelled_call

    def test_accepts_payload_mapping(self, make_engine):
        report = make_engine().send(IDS[:1], {"title": "Hi", "data": {"n": 1}})

        assert report.delivered == 1

    def test_malformed_identifiers_rejected_without_provider_call(self, make_engine, payload):
        provider = ScriptedProvider()

        report = make_engine(provider).send([IDS[0], "bad", IDS[1], "white space!"], payload)

        sent = [i for call in provider.calls for i in call.registration_ids]
        assert sent == [IDS[0], IDS[1]]
        assert report.result_at(1).outcome is DeliveryOutcome.INVALID_RECIPIENT
        assert report.result_at(1).reason == "too_short"
        assert report.result_at(3).reason == "invalid_characters"

    def test_identifier_with_line_break_never_sent(self, make_engine, payload):
        provider = ScriptedProvider()

        report = make_engine(provider).send([IDS[0] + "\n", IDS[1] + "\r\n", IDS[2]], payload)

        sent = [i for call in provider.calls for i in call.registration_ids]
        assert sent == [IDS[2]]
        assert report.result_at(0).outcome is DeliveryOutcome.INVALID_RECIPIENT
        assert report.result_at(0).reason == "invalid_characters"
        assert report.result_at(1).outcome is DeliveryOutcome.INVALID_RECIPIENT

    def test_duplicate_identifiers_reported_per_position(self, make_engine, payload):
        report = make_engine().send([IDS[0], IDS[0], IDS[1]], payload)

        assert report.total == 3
        assert report.delivered == 3

    def test_transient_then_success_is_retried(self, make_engine, payload):
        provider = ScriptedProvider(codes={IDS[2]: ["Unavailable", None]})

        report = make_engine(provider).send(IDS, payload)

        assert report.delivered == 6
        assert report.result_at(2).attempts == 2
        assert report.result_at(0).attempts == 1
        assert report.retry_rounds == 1
        assert report.retry_attempts == 1

    def test_retries_bounded_by_max_retries(self, make_engine, payload):
        provider = ScriptedProvider(codes={IDS[0]: ["Unavailable"]})

        report = make_engine(provider, max_retries=2).send(IDS, payload)

        assert report.result_at(0).outcome is DeliveryOutcome.FAILED_AFTER_RETRIES
        assert report.result_at(0).error_code == "Unavailable"
        assert report.result_at(0).attempts == 3
        assert provider.attempts_for(IDS[0]) == 3
        assert report.retry_rounds == 2

    def test_per_call_retry_override(self, make_engine, payload):
        provider = ScriptedProvider(codes={IDS[0]: ["Unavailable"]})

        report = make_engine(provider, max_retries=5).send(IDS, payload, SendOptions(max_retries=0))

        assert provider.attempts_for(IDS[0]) == 1
        assert report.failed_after_retries == 1

    def test_open_circuit_retry_waits_for_cooldown(self, make_engine, payload):
        provider = ScriptedProvider(codes={IDS[0]: ["Unavailable", None]})
        breaker = CircuitBreaker(threshold=1, window_seconds=60, cooldown_seconds=0.3)
        engine = make_engine(provider, circuit_breaker=breaker, max_retries=3)

        started = time.monotonic()
        report = engine.send(IDS[:1], payload)
        elapsed = time.monotonic() - started

        assert report.result_at(0).outcome is DeliveryOutcome.DELIVERED
        assert provider.call_count == 2
        assert elapsed >= 0.25
        assert breaker.state is CircuitState.CLOSED

    def test_retry_budget_spent_wins_over_late_deadline(self, make_engine, payload):
        provider = ScriptedProvider(codes={IDS[0]: ["Unavailable"]}, delay=0.3)

        report = make_engine(provider, max_retries=0).send(IDS[:1], payload, SendOptions(deadline=0.1))

        assert report.result_at(0).outcome is DeliveryOutcome.FAILED_AFTER_RETRIES
        assert report.failed_after_retries == 1
        assert not report.cancelled_call

    def test_invalid_and_fatal_are_not_retried(self, make_engine, payload):
        provider = ScriptedProvider(codes={IDS[0]: ["NotRegistered"], IDS[1]: ["MismatchSenderId"]})

        report = make_engine(provider).send(IDS[:2], payload, SendOptions(batch_size=1))

        assert report.result_at(0).outcome is DeliveryOutcome.INVALID_RECIPIENT
        assert report.result_at(1).outcome is DeliveryOutcome.FATAL
        assert provider.call_count == 2

    def test_canonical_id_reported_as_moved(self, make_engine, payload):
        provider = ScriptedProvider(canonical={IDS[3]: "device-token-renamed"})

        report = make_engine(provider).send(IDS, payload)

        moved = report.result_at(3)
        assert moved.outcome is DeliveryOutcome.RECIPIENT_MOVED
        assert moved.canonical_id == "device-token-renamed"
        assert report.all_succeeded


class TestBatching:
    """Batch sizing and provider limits."""

    def test_batch_size_option(self, make_engine, payload):
        provider = ScriptedProvider()

        make_engine(provider).send(IDS, payload, SendOptions(batch_size=4))

        assert sorted(len(call.registration_ids) for call in provider.calls) == [2, 4]

    def test_batch_size_capped_by_provider(self, make_engine, payload):
        provider = ScriptedProvider(max_batch_size=2)

        make_engine(provider, batch_size=10).send(IDS, payload)

        assert all(len(call.registration_ids) <= 2 for call in provider.calls)
        assert provider.call_count == 3

    def test_effective_batch_size(self, make_engine):
        engine = make_engine(ScriptedProvider(max_batch_size=500), batch_size=100)

        assert engine.effective_batch_size() == 100
        assert engine.effective_batch_size(1000) == 500


class TestCancellation:
    """Caller cancellation and deadlines."""

    def test_pre_cancelled_token_sends_nothing(self, make_engine, payload):
        provider = ScriptedProvider()
        token = CancellationToken()
        token.cancel()

        report = make_engine(provider).send(IDS, payload, SendOptions(cancellation=token))

        assert provider.call_count == 0
        assert report.cancelled == 6
        assert report.cancelled_call

    def test_deadline_cuts_backoff_short(self, make_engine, payload):
        provider = ScriptedProvider(codes={IDS[0]: ["Unavailable"]})
        engine = make_engine(provider, base_delay=10.0, max_delay=10.0)

        started = time.monotonic()
        report = engine.send(IDS, payload, SendOptions(deadline=0.3))
        elapsed = time.monotonic() - started

        assert elapsed < 5
        assert report.result_at(0).outcome is DeliveryOutcome.CANCELLED
        assert report.delivered == 5
        assert report.cancelled_call

    def test_completed_call_not_marked_cancelled_by_later_cancel(self, make_engine, payload):
        token = CancellationToken()

        report = make_engine().send(IDS, payload, SendOptions(cancellation=token))
        token.cancel()

        assert not report.cancelled_call


class TestReconciliation:
    """Registry reconciliation attached to the report."""

    def test_reconciliation_applied_through_lifecycle(self, make_engine, payload):
        provider = ScriptedProvider(codes={IDS[0]: ["NotRegistered"]}, canonical={IDS[1]: "device-token-renamed"})
        updater = InMemoryRegistryUpdater(set(IDS))
        engine = make_engine(provider, lifecycle=RegistrationLifecycleManager(updater))

        report = engine.send(IDS, payload)

        assert report.reconciliation.to_remove == (IDS[0],)
        assert report.reconciliation.to_replace == ((IDS[1], "device-token-renamed"),)
        assert report.reconciliation.applied
        assert IDS[0] not in updater.registrations
        assert "device-token-renamed" in updater.registrations

    def test_no_lifecycle_means_no_reconciliation(self, make_engine, payload):
        assert make_engine().send(IDS, payload).reconciliation is None


class TestFromConfig:
    """Engine construction from EngineConfig."""

    def test_builds_components_from_config(self):
        config = EngineConfig.model_validate(
            {
                "dispatch": {"worker_count": 2, "max_retries": 1, "batch_size": 50, "deadline": "1m"},
                "rate_limit": {"capacity": 5, "refill_rate": 5},
                "circuit_breaker": {"threshold": 4, "window": "30s", "cooldown": "10s"},
            }
        )

        engine = DeliveryEngine.from_config(config, ScriptedProvider())

        assert engine.worker_count == 2
        assert engine.max_retries == 1
        assert engine.batch_size == 50
        assert engine.deadline == 60.0
        assert engine.rate_limiter.capacity == 5
        assert engine.circuit_breaker.threshold == 4
        assert engine.circuit_breaker.cooldown_seconds == 10.0
        assert engine.lifecycle is not None

    def test_registry_disabled_has_no_lifecycle(self):
        config = EngineConfig.model_validate({"registry": {"enabled": False}})

        assert DeliveryEngine.from_config(config, ScriptedProvider()).lifecycle is None

    def test_close_closes_provider(self):
        provider = ScriptedProvider()

        DeliveryEngine.from_config(EngineConfig(), provider).close()

        assert provider.closed
