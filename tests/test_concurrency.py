"""
Two engines over one database

Each engine keeps its own projections, so the second one is stale after the
first writes. Optimistic locking on stream versions must turn every stale
decision into a re-read, never into a lost update.
"""

from datetime import date, timedelta

import pytest

from order_lifecycle import OrderLifecycle
from order_lifecycle.kernel.audit import AuditRecordType, InMemoryAuditSink
from order_lifecycle.kernel.errors import ClosureRoundNotFound
from order_lifecycle.kernel.policy import LifecyclePolicy
from order_lifecycle.kernel.time import TestTimeProvider
from tests.helpers import PHONE, register_scenario_offers


def second_engine(temp_db, policy: LifecyclePolicy, test_time: TestTimeProvider, **kwargs) -> OrderLifecycle:
    return OrderLifecycle(temp_db, policy=policy, time_provider=test_time, **kwargs)


def test_stale_double_cancel_is_declined(
    engine: OrderLifecycle, temp_db, policy: LifecyclePolicy, test_time: TestTimeProvider
) -> None:
    intention = engine.open_intention("buyer-1", PHONE, test_time.now() + timedelta(days=60), "999")
    other = second_engine(temp_db, policy, test_time)

    assert engine.cancel("buyer-1", intention.commitment_id).success
    result = other.cancel("buyer-1", intention.commitment_id)

    assert not result.success
    assert "cancelled" in result.reason
    assert len(other.history(intention.commitment_id)) == 2
    assert other.get_cancellation_status("buyer-1").cancellations_this_month == 1


def test_concurrent_cancellations_both_count(
    engine: OrderLifecycle, temp_db, policy: LifecyclePolicy, test_time: TestTimeProvider
) -> None:
    deadline = test_time.now() + timedelta(days=60)
    first = engine.open_intention("buyer-1", PHONE, deadline, "999")
    second = engine.open_intention("buyer-1", PHONE, deadline, "999")
    other = second_engine(temp_db, policy, test_time)

    engine.cancel("buyer-1", first.commitment_id)
    assert other.cancel("buyer-1", second.commitment_id).success

    fresh = second_engine(temp_db, policy, test_time)
    assert fresh.get_cancellation_status("buyer-1").cancellations_this_month == 2
    assert len(fresh.history("actor-buyer-1")) == 2


def test_limit_crossed_from_two_engines_suspends(
    engine: OrderLifecycle, temp_db, policy: LifecyclePolicy, test_time: TestTimeProvider
) -> None:
    deadline = test_time.now() + timedelta(days=60)
    ids = [
        engine.open_intention("buyer-1", PHONE, deadline, "999").commitment_id
        for _ in range(4)
    ]
    other = second_engine(temp_db, policy, test_time)

    for commitment_id in ids[:3]:
        engine.cancel("buyer-1", commitment_id)
    result = other.cancel("buyer-1", ids[3])

    assert result.penalty_applied
    assert not other.get_cancellation_status("buyer-1").can_make_new_orders


def test_closure_processed_by_two_engines_once(
    engine: OrderLifecycle,
    temp_db,
    policy: LifecyclePolicy,
    test_time: TestTimeProvider,
    audit_sink: InMemoryAuditSink,
) -> None:
    register_scenario_offers(engine, test_time)
    other_sink = InMemoryAuditSink()
    other = second_engine(temp_db, policy, test_time, audit_sink=other_sink)

    first = engine.process_closure(PHONE, deadline=date(2025, 6, 1))
    engine_view = other.process_closure(PHONE, deadline=date(2025, 6, 1))

    assert engine_view.round_id == first.round_id
    assert engine_view.selected_offer_id == first.selected_offer_id
    assert len(other.history(first.round_id)) == 1
    assert len(audit_sink.of_type(AuditRecordType.SELECTION_MADE)) == 1
    assert other_sink.of_type(AuditRecordType.SELECTION_MADE) == []


def test_stale_duplicate_failure_does_not_skip_a_backup(
    engine: OrderLifecycle, temp_db, policy: LifecyclePolicy, test_time: TestTimeProvider
) -> None:
    offers = register_scenario_offers(engine, test_time)
    round_id = engine.process_closure(PHONE, deadline=date(2025, 6, 1)).round_id
    other = second_engine(temp_db, policy, test_time)

    engine.handle_fulfillment_failure(offers["A"].offer_id, "out of stock")
    with pytest.raises(ClosureRoundNotFound):
        other.handle_fulfillment_failure(offers["A"].offer_id, "out of stock")

    closure_round = other.get_closure_round(round_id)
    assert closure_round.selected_offer_id == offers["B"].offer_id
    assert closure_round.backup_offer_ids == [offers["C"].offer_id, offers["D"].offer_id]
