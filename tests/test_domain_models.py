"""Unit tests for domain models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from push_engine.domain.models import (
    Batch,
    BatchItem,
    BatchResult,
    DeliveryOutcome,
    DeliveryReport,
    NotificationPayload,
    PushOptions,
    ReconciliationResult,
    Recipient,
    RecipientOutcome,
    RecipientResult,
)

STARTED = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
FINISHED = datetime(2026, 3, 1, 12, 0, 2, tzinfo=timezone.utc)


def make_report(outcomes, **kwargs):
    results = tuple(
        RecipientResult(
            position=i,
            recipient=Recipient(registration_id=f"device-token-{i:04d}"),
            outcome=outcome,
            attempts=1,
            error_code=code,
        )
        for i, (outcome, code) in enumerate(outcomes)
    )
    return DeliveryReport(
        request_id="req-1",
        results=results,
        started_at=STARTED,
        finished_at=FINISHED,
        elapsed_seconds=2.0,
        **kwargs,
    )


class TestRecipient:
    """Tests for Recipient model."""

    def test_coerce_string(self):
        recipient = Recipient.coerce("device-token-0001")

        assert recipient.registration_id == "device-token-0001"
        assert recipient.platform is None

    def test_coerce_mapping(self):
        recipient = Recipient.coerce({"registration_id": "abc", "platform": "ios", "metadata": {"user": "7"}})

        assert recipient.platform == "ios"
        assert recipient.metadata == {"user": "7"}

    def test_coerce_passes_instances_through(self):
        recipient = Recipient(registration_id="abc")
        assert Recipient.coerce(recipient) is recipient

    def test_identifier_kept_verbatim(self):
        """Test that whitespace is not stripped (the validator decides)."""
        assert Recipient(registration_id="  padded ").registration_id == "  padded "

    def test_missing_identifier(self):
        with pytest.raises(ValidationError):
            Recipient.coerce({"platform": "android"})

    def test_frozen(self):
        recipient = Recipient(registration_id="abc")
        with pytest.raises(ValidationError):
            recipient.registration_id = "other"


class TestNotificationPayload:
    """Tests for NotificationPayload model."""

    def test_title_only(self):
        payload = NotificationPayload(title="Hello")
        assert payload.options.priority == "high"

    def test_data_only(self):
        payload = NotificationPayload(data={"sync": True, "count": 3, "extra": None, "nested": {"b": 1, "a": 2}})

        assert payload.data == {"sync": "true", "count": "3", "extra": "", "nested": '{"a":2,"b":1}'}

    def test_requires_title_or_data(self):
        with pytest.raises(ValidationError) as exc_info:
            NotificationPayload(body="Only a body")

        assert "title or data" in str(exc_info.value)

    def test_title_too_long(self):
        with pytest.raises(ValidationError):
            NotificationPayload(title="x" * 101)

    def test_body_too_long(self):
        with pytest.raises(ValidationError):
            NotificationPayload(title="ok", body="x" * 501)

    def test_options_bounds(self):
        with pytest.raises(ValidationError):
            PushOptions(time_to_live=-1)
        with pytest.raises(ValidationError):
            PushOptions(priority="urgent")

    def test_to_wire_omits_unset_fields(self):
        wire = NotificationPayload(title="Hi").to_wire()

        assert wire == {"title": "Hi", "data": {}, "options": {"priority": "high"}}

    def test_size_bytes_counts_utf8(self):
        ascii_size = NotificationPayload(title="aaaa").size_bytes()
        accented_size = NotificationPayload(title="éééé").size_bytes()

        assert accented_size == ascii_size + 4


class TestDeliveryOutcome:
    """Tests for outcome classification helpers."""

    def test_only_transient_is_not_terminal(self):
        assert not DeliveryOutcome.TRANSIENT.is_terminal
        assert all(o.is_terminal for o in DeliveryOutcome if o is not DeliveryOutcome.TRANSIENT)

    def test_success_outcomes(self):
        successes = {o for o in DeliveryOutcome if o.is_success}
        assert successes == {DeliveryOutcome.DELIVERED, DeliveryOutcome.RECIPIENT_MOVED}


class TestBatch:
    """Tests for Batch and BatchResult."""

    def test_batch_accessors(self, payload, make_items):
        batch = Batch(batch_id="req-1-r0-b0", items=tuple(make_items(3)), payload=payload)

        assert len(batch) == 3
        assert batch.size == 3
        assert batch.attempt == 0
        assert batch.registration_ids == ["device-token-0000", "device-token-0001", "device-token-0002"]
        assert [r.registration_id for r in batch.recipients] == batch.registration_ids

    def test_batch_result_transient_items(self, payload, make_items):
        items = make_items(3)
        batch = Batch(batch_id="b", items=tuple(items), payload=payload)
        result = BatchResult(
            batch=batch,
            outcomes=(
                RecipientOutcome(items[0], DeliveryOutcome.DELIVERED),
                RecipientOutcome(items[1], DeliveryOutcome.TRANSIENT, error_code="Unavailable"),
                RecipientOutcome(items[2], DeliveryOutcome.INVALID_RECIPIENT, error_code="NotRegistered"),
            ),
            dispatched=True,
            completed_at=1.0,
        )

        assert result.transient_items == [items[1]]
        assert [o.item for o in result.with_outcome(DeliveryOutcome.INVALID_RECIPIENT)] == [items[2]]


class TestDeliveryReport:
    """Tests for DeliveryReport aggregates."""

    def test_counts(self):
        report = make_report(
            [
                (DeliveryOutcome.DELIVERED, None),
                (DeliveryOutcome.DELIVERED, None),
                (DeliveryOutcome.RECIPIENT_MOVED, None),
                (DeliveryOutcome.INVALID_RECIPIENT, "NotRegistered"),
                (DeliveryOutcome.FAILED_AFTER_RETRIES, "Unavailable"),
                (DeliveryOutcome.FAILED_AFTER_RETRIES, "Unavailable"),
                (DeliveryOutcome.FATAL, "auth_failed"),
                (DeliveryOutcome.CANCELLED, None),
            ]
        )

        assert report.total == 8
        assert report.delivered == 2
        assert report.moved == 1
        assert report.invalid == 1
        assert report.failed_after_retries == 2
        assert report.fatal == 1
        assert report.cancelled == 1
        assert report.success_rate == 37.5
        assert report.all_succeeded is False
        assert report.error_counts == {"Unavailable": 2, "NotRegistered": 1, "auth_failed": 1, "cancelled": 1}

    def test_all_succeeded_counts_moved(self):
        report = make_report([(DeliveryOutcome.DELIVERED, None), (DeliveryOutcome.RECIPIENT_MOVED, None)])

        assert report.all_succeeded is True
        assert report.success_rate == 100.0
        assert report.error_counts == {}

    def test_empty_report(self):
        report = make_report([])

        assert report.success_rate == 0.0
        assert report.all_succeeded is True

    def test_by_outcome_and_result_at(self):
        report = make_report([(DeliveryOutcome.DELIVERED, None), (DeliveryOutcome.FATAL, "payload_rejected")])

        assert [r.position for r in report.by_outcome(DeliveryOutcome.FATAL)] == [1]
        assert report.result_at(1).error_code == "payload_rejected"

    def test_report_is_immutable(self):
        report = make_report([(DeliveryOutcome.DELIVERED, None)])

        with pytest.raises(AttributeError):
            report.request_id = "other"

    def test_reconciliation_has_changes(self):
        assert not ReconciliationResult().has_changes
        assert ReconciliationResult(to_remove=("a",)).has_changes
        assert ReconciliationResult(to_replace=(("a", "b"),)).has_changes
