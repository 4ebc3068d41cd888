"""Unit tests for result aggregation across dispatch rounds."""

import pytest

from push_engine.delivery.aggregator import ResultAggregator
from push_engine.delivery.validator import RejectedRecipient
from push_engine.domain.models import Batch, BatchResult, DeliveryOutcome, RecipientOutcome

from tests.helpers import FakeClock


def batch_result(items, outcomes, payload, attempt=0, dispatched=True, completed_at=1000.0, codes=None):
    batch = Batch(batch_id=f"t-r{attempt}-b0", items=tuple(items), payload=payload, attempt=attempt)
    codes = codes or [None] * len(items)
    return BatchResult(
        batch=batch,
        outcomes=tuple(
            RecipientOutcome(item=item, outcome=outcome, error_code=code)
            for item, outcome, code in zip(items, outcomes, codes)
        ),
        dispatched=dispatched,
        completed_at=completed_at,
    )


D = DeliveryOutcome.DELIVERED
T = DeliveryOutcome.TRANSIENT
I = DeliveryOutcome.INVALID_RECIPIENT


def test_terminal_outcomes_settle_and_transient_stay_pending(make_items, payload):
    items = make_items(3)
    aggregator = ResultAggregator(items, clock=FakeClock())

    transient = aggregator.add(batch_result(items, [D, T, I], payload, codes=[None, "Unavailable", "NotRegistered"]))

    assert transient == [items[1]]
    assert aggregator.pending_count == 1
    assert aggregator.count(D) == 1
    assert aggregator.count(I) == 1


def test_retry_settles_pending_and_counts_attempts(make_items, payload):
    items = make_items(2)
    aggregator = ResultAggregator(items, clock=FakeClock())
    aggregator.add(batch_result(items, [D, T], payload))

    aggregator.start_retry_round()
    aggregator.add(batch_result([items[1]], [D], payload, attempt=1))
    report = aggregator.build_report("req")

    assert [r.outcome for r in report.results] == [D, D]
    assert report.result_at(1).attempts == 2
    assert report.retry_rounds == 1
    assert report.retry_attempts == 1


def test_finalize_pending_marks_failed_after_retries(make_items, payload):
    items = make_items(2)
    aggregator = ResultAggregator(items, clock=FakeClock())
    aggregator.add(batch_result(items, [T, T], payload, codes=["Unavailable", "Unavailable"]))

    assert aggregator.finalize_pending(DeliveryOutcome.FAILED_AFTER_RETRIES) == 2
    report = aggregator.build_report("req")

    assert report.failed_after_retries == 2
    assert report.result_at(0).error_code == "Unavailable"


def test_terminal_outcome_is_never_overwritten(make_items, payload):
    items = make_items(1)
    aggregator = ResultAggregator(items, clock=FakeClock())
    aggregator.add(batch_result(items, [I], payload))

    aggregator.add(batch_result(items, [D], payload, attempt=1))

    assert aggregator.build_report("req").results[0].outcome is I


def test_rejections_recorded_with_reason(make_items, payload):
    items = make_items(2)
    aggregator = ResultAggregator(items, clock=FakeClock())

    aggregator.record_rejections([RejectedRecipient(item=items[0], reason="too_short")])
    aggregator.add(batch_result([items[1]], [D], payload))
    report = aggregator.build_report("req")

    assert report.results[0].outcome is I
    assert report.results[0].reason == "too_short"
    assert report.results[0].attempts == 0


def test_unreported_recipients_become_cancelled(make_items, payload):
    items = make_items(3)
    aggregator = ResultAggregator(items, clock=FakeClock())
    aggregator.add(batch_result(items[:1], [D], payload))

    report = aggregator.build_report("req", cancelled_call=True)

    assert [r.outcome for r in report.results] == [D, DeliveryOutcome.CANCELLED, DeliveryOutcome.CANCELLED]
    assert report.cancelled_call


def test_not_dispatched_results_do_not_count_attempts(make_items, payload):
    items = make_items(1)
    aggregator = ResultAggregator(items, clock=FakeClock())

    aggregator.add(batch_result(items, [DeliveryOutcome.CANCELLED], payload, dispatched=False))

    assert aggregator.build_report("req").results[0].attempts == 0


def test_elapsed_runs_to_last_completion(make_items, payload):
    clock = FakeClock(start=100.0)
    items = make_items(2)
    aggregator = ResultAggregator(items, clock=clock)

    aggregator.add(batch_result(items[:1], [D], payload, completed_at=101.5))
    aggregator.add(batch_result(items[1:], [D], payload, completed_at=100.5))
    clock.advance(50)

    assert aggregator.build_report("req").elapsed_seconds == pytest.approx(1.5)


def test_unknown_position_raises(make_items, payload):
    aggregator = ResultAggregator(make_items(1), clock=FakeClock())
    stranger = make_items(1, start=9)

    with pytest.raises(KeyError):
        aggregator.add(batch_result(stranger, [D], payload))
