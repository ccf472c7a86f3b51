"""
Cancellation through the engine: margins, counters, suspension, audit
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from order_lifecycle import OrderLifecycle
from order_lifecycle.commitments.models import AccountStatus, CommitmentStatus
from order_lifecycle.kernel.audit import AuditRecordType, InMemoryAuditSink
from order_lifecycle.kernel.errors import (
    AccountSuspended,
    CommitmentNotFound,
    CommitmentTerminal,
    NotCommitmentOwner,
)
from order_lifecycle.kernel.time import TestTimeProvider
from tests.helpers import LAPTOP, PHONE


def open_intentions(engine: OrderLifecycle, test_time: TestTimeProvider, count: int, actor_id="buyer-1"):
    deadline = test_time.now() + timedelta(days=60)
    return [
        engine.open_intention(actor_id, PHONE, deadline, "999").commitment_id
        for _ in range(count)
    ]


class TestConsumerCancellation:
    def test_cancel_outside_margin(self, engine: OrderLifecycle, test_time: TestTimeProvider) -> None:
        [commitment_id] = open_intentions(engine, test_time, 1)

        result = engine.cancel("buyer-1", commitment_id, reason="found it cheaper")

        assert result.success
        assert not result.penalty_applied
        assert result.compensation_required is None
        assert result.account_status == AccountStatus.ACTIVE
        assert engine.get_commitment(commitment_id).status == CommitmentStatus.CANCELLED

        status = engine.get_cancellation_status("buyer-1")
        assert status.cancellations_this_month == 1
        assert status.can_make_new_orders

    def test_cancel_inside_margin_declined(self, engine: OrderLifecycle, test_time: TestTimeProvider) -> None:
        intention = engine.open_intention("buyer-1", PHONE, test_time.now() + timedelta(hours=30), "999")
        test_time.advance_hours(10)

        assert not engine.can_cancel(intention.commitment_id).allowed
        result = engine.cancel("buyer-1", intention.commitment_id)

        assert not result.success
        assert "24 hours" in result.reason
        assert engine.get_commitment(intention.commitment_id).status == CommitmentStatus.ACTIVE
        assert engine.get_cancellation_status("buyer-1").cancellations_this_month == 0
        assert len(engine.history(intention.commitment_id)) == 1

    def test_fourth_cancellation_suspends_for_thirty_days(
        self,
        engine: OrderLifecycle,
        test_time: TestTimeProvider,
        audit_sink: InMemoryAuditSink,
    ) -> None:
        ids = open_intentions(engine, test_time, 4)
        for commitment_id in ids[:3]:
            assert not engine.cancel("buyer-1", commitment_id).penalty_applied

        result = engine.cancel("buyer-1", ids[3])

        assert result.success
        assert result.penalty_applied
        assert result.account_status == AccountStatus.SUSPENDED
        assert result.suspension_until == test_time.now() + timedelta(days=30)

        status = engine.get_cancellation_status("buyer-1")
        assert status.cancellations_this_month == 4
        assert status.account_status == AccountStatus.SUSPENDED
        assert status.suspension_reason == "Exceeded B2C cancellation limit (4/3 this month)"
        assert not status.can_make_new_orders

        assert len(audit_sink.of_type(AuditRecordType.CANCELLATION_RECORDED)) == 4
        [suspension] = audit_sink.of_type(AuditRecordType.ACCOUNT_SUSPENDED)
        assert suspension.actor_id == "buyer-1"

    def test_suspended_actor_cannot_open(self, engine: OrderLifecycle, test_time: TestTimeProvider) -> None:
        for commitment_id in open_intentions(engine, test_time, 4):
            engine.cancel("buyer-1", commitment_id)

        with pytest.raises(AccountSuspended):
            engine.open_intention("buyer-1", PHONE, test_time.now() + timedelta(days=60), "999")

    def test_suspension_expires(self, engine: OrderLifecycle, test_time: TestTimeProvider) -> None:
        for commitment_id in open_intentions(engine, test_time, 4):
            engine.cancel("buyer-1", commitment_id)

        test_time.advance_days(31)

        status = engine.get_cancellation_status("buyer-1")
        assert status.account_status == AccountStatus.ACTIVE
        assert status.suspension_until is None
        assert status.cancellations_this_month == 0
        assert status.can_make_new_orders
        engine.open_intention("buyer-1", PHONE, test_time.now() + timedelta(days=60), "999")

    def test_counters_reset_in_new_month(self, engine: OrderLifecycle, test_time: TestTimeProvider) -> None:
        ids = open_intentions(engine, test_time, 4)
        for commitment_id in ids[:3]:
            engine.cancel("buyer-1", commitment_id)

        test_time.set_time(datetime(2025, 2, 1, 9, 0, tzinfo=timezone.utc))
        result = engine.cancel("buyer-1", ids[3])

        assert not result.penalty_applied
        assert engine.get_cancellation_status("buyer-1").cancellations_this_month == 1

    def test_second_cancel_is_declined(self, engine: OrderLifecycle, test_time: TestTimeProvider) -> None:
        [commitment_id] = open_intentions(engine, test_time, 1)
        engine.cancel("buyer-1", commitment_id)

        result = engine.cancel("buyer-1", commitment_id)

        assert not result.success
        assert "cancelled" in result.reason
        assert engine.get_cancellation_status("buyer-1").cancellations_this_month == 1

    def test_only_owner_may_cancel(self, engine: OrderLifecycle, test_time: TestTimeProvider) -> None:
        [commitment_id] = open_intentions(engine, test_time, 1)

        with pytest.raises(NotCommitmentOwner):
            engine.cancel("buyer-2", commitment_id)

    def test_unknown_commitment(self, engine: OrderLifecycle) -> None:
        with pytest.raises(CommitmentNotFound):
            engine.cancel("buyer-1", "missing")
        with pytest.raises(CommitmentNotFound):
            engine.can_cancel("missing")

    def test_unknown_actor_is_active(self, engine: OrderLifecycle) -> None:
        status = engine.get_cancellation_status("nobody")

        assert status.account_status == AccountStatus.ACTIVE
        assert status.cancellations_this_month == 0
        assert status.can_make_new_orders


class TestBusinessCancellation:
    def open_rfq(self, engine: OrderLifecycle, test_time: TestTimeProvider):
        return engine.open_rfq("business-1", LAPTOP, test_time.now() + timedelta(days=60), "2000")

    def test_compensation_inside_window(self, engine: OrderLifecycle, test_time: TestTimeProvider) -> None:
        rfq = self.open_rfq(engine, test_time)
        test_time.set_time(rfq.deadline - timedelta(hours=50))

        result = engine.cancel("business-1", rfq.commitment_id)

        assert result.success
        assert result.compensation_required == Decimal("200.00")
        [entry] = engine.list_cancellations("business-1")
        assert entry.hours_before_deadline == 50
        assert entry.business_impact.value == "high"

    def test_no_compensation_outside_window(self, engine: OrderLifecycle, test_time: TestTimeProvider) -> None:
        rfq = self.open_rfq(engine, test_time)
        test_time.set_time(rfq.deadline - timedelta(hours=100))

        result = engine.cancel("business-1", rfq.commitment_id)

        assert result.compensation_required == Decimal("0.00")

    def test_inside_business_margin_declined(self, engine: OrderLifecycle, test_time: TestTimeProvider) -> None:
        rfq = self.open_rfq(engine, test_time)
        test_time.set_time(rfq.deadline - timedelta(hours=40))

        result = engine.cancel("business-1", rfq.commitment_id)

        assert not result.success
        assert "48 hours" in result.reason

    def test_third_rfq_cancellation_suspends_for_sixty_days(
        self, engine: OrderLifecycle, test_time: TestTimeProvider
    ) -> None:
        rfqs = [self.open_rfq(engine, test_time) for _ in range(3)]
        for rfq in rfqs[:2]:
            engine.cancel("business-1", rfq.commitment_id)

        result = engine.cancel("business-1", rfqs[2].commitment_id)

        assert result.penalty_applied
        assert result.suspension_until == test_time.now() + timedelta(days=60)
        status = engine.get_cancellation_status("business-1")
        assert status.rfq_cancellations_this_month == 3
        assert status.cancellations_this_month == 0

    def test_limit_override(self, engine: OrderLifecycle, test_time: TestTimeProvider) -> None:
        engine.set_business_cancellation_limit("business-1", 5, operator_id="ops")
        rfqs = [self.open_rfq(engine, test_time) for _ in range(3)]

        results = [engine.cancel("business-1", rfq.commitment_id) for rfq in rfqs]

        assert not any(r.penalty_applied for r in results)
        assert engine.get_cancellation_status("business-1").can_make_new_orders


def test_ban_blocks_new_orders(engine: OrderLifecycle, test_time: TestTimeProvider) -> None:
    status = engine.ban_actor("buyer-1", "chargeback fraud", operator_id="ops")

    assert status.account_status == AccountStatus.BANNED
    assert not status.can_make_new_orders
    with pytest.raises(AccountSuspended):
        open_intentions(engine, test_time, 1)


class ExplodingSink:
    def emit(self, record) -> None:
        raise RuntimeError("audit backend down")


def test_audit_failure_does_not_undo_cancellation(temp_db, policy, test_time: TestTimeProvider) -> None:
    engine = OrderLifecycle(temp_db, policy=policy, time_provider=test_time, audit_sink=ExplodingSink())
    [commitment_id] = open_intentions(engine, test_time, 1)

    assert engine.cancel("buyer-1", commitment_id).success
    assert engine.get_commitment(commitment_id).status == CommitmentStatus.CANCELLED


class TestCompletion:
    def test_completed_commitment_cannot_be_cancelled(self, engine: OrderLifecycle, test_time: TestTimeProvider) -> None:
        [commitment_id] = open_intentions(engine, test_time, 1)

        completed = engine.complete_commitment(commitment_id, actor_id="ops")

        assert completed.status == CommitmentStatus.COMPLETED
        result = engine.cancel("buyer-1", commitment_id)
        assert not result.success
        assert "completed" in result.reason
        with pytest.raises(CommitmentTerminal):
            engine.complete_commitment(commitment_id)

    def test_list_commitments_in_opening_order(self, engine: OrderLifecycle, test_time: TestTimeProvider) -> None:
        first = open_intentions(engine, test_time, 1)
        test_time.advance_seconds(5)
        second = open_intentions(engine, test_time, 1)
        open_intentions(engine, test_time, 1, actor_id="buyer-2")

        listed = engine.list_commitments("buyer-1")

        assert [c.commitment_id for c in listed] == first + second
