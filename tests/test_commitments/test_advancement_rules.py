"""
Tests for advancement rules - thresholds, bonus curves, incentives
"""

from datetime import timedelta
from decimal import Decimal

from order_lifecycle.commitments.advancement import (
    business_priority,
    business_urgency,
    counterpart_incentive,
    days_between,
    evaluate_advancement,
)
from order_lifecycle.commitments.models import (
    BusinessPriority,
    BusinessUrgency,
    CommitmentStatus,
)
from order_lifecycle.kernel.policy import ActorClass, LifecyclePolicy
from tests.helpers import NOW, build_intention, build_rfq


def test_days_between_floors_partial_days() -> None:
    assert days_between(NOW + timedelta(days=30, hours=23), NOW) == 30
    assert days_between(NOW, NOW + timedelta(hours=1)) == -1


class TestEvaluateAdvancement:
    def test_consumer_below_minimum_declined(self, policy: LifecyclePolicy) -> None:
        intention = build_intention(NOW + timedelta(days=200))

        check = evaluate_advancement(intention, NOW + timedelta(days=171), NOW, policy)

        assert not check.allowed
        assert check.days_advanced == 29
        assert check.max_bonus_percent == 0
        assert "at least 30 days" in check.reason

    def test_consumer_bonus(self, policy: LifecyclePolicy) -> None:
        intention = build_intention(NOW + timedelta(days=200))

        check = evaluate_advancement(intention, NOW + timedelta(days=139), NOW, policy)

        assert check.allowed
        assert check.days_advanced == 61
        assert check.max_bonus_percent == 2
        assert check.cost_savings is None

    def test_consumer_bonus_capped(self, policy: LifecyclePolicy) -> None:
        intention = build_intention(NOW + timedelta(days=600))

        check = evaluate_advancement(intention, NOW + timedelta(days=10), NOW, policy)

        assert check.days_advanced == 590
        assert check.max_bonus_percent == 15

    def test_business_threshold_and_cost_savings(self, policy: LifecyclePolicy) -> None:
        rfq = build_rfq(NOW + timedelta(days=100), target_price="1000", quantity=10)

        check = evaluate_advancement(rfq, NOW + timedelta(days=69), NOW, policy)

        assert check.allowed
        assert check.days_advanced == 31
        assert check.max_bonus_percent == 4
        assert check.cost_savings == Decimal("400.00")

    def test_business_below_minimum_declined(self, policy: LifecyclePolicy) -> None:
        rfq = build_rfq(NOW + timedelta(days=100))

        check = evaluate_advancement(rfq, NOW + timedelta(days=86), NOW, policy)

        assert not check.allowed
        assert check.days_advanced == 14

    def test_business_bonus_capped(self, policy: LifecyclePolicy) -> None:
        rfq = build_rfq(NOW + timedelta(days=400), target_price="100", quantity=3)

        check = evaluate_advancement(rfq, NOW + timedelta(days=5), NOW, policy)

        assert check.max_bonus_percent == 20
        assert check.cost_savings == Decimal("60.00")

    def test_new_date_must_be_in_future(self, policy: LifecyclePolicy) -> None:
        intention = build_intention(NOW + timedelta(days=60))

        check = evaluate_advancement(intention, NOW - timedelta(hours=1), NOW, policy)

        assert not check.allowed
        assert "future" in check.reason

    def test_later_date_is_not_an_advancement(self, policy: LifecyclePolicy) -> None:
        intention = build_intention(NOW + timedelta(days=60))

        check = evaluate_advancement(intention, NOW + timedelta(days=120), NOW, policy)

        assert not check.allowed
        assert check.days_advanced == -60

    def test_terminal_commitment_declined(self, policy: LifecyclePolicy) -> None:
        intention = build_intention(NOW + timedelta(days=200), status=CommitmentStatus.CANCELLED)

        check = evaluate_advancement(intention, NOW + timedelta(days=100), NOW, policy)

        assert not check.allowed
        assert "cancelled" in check.reason


class TestIncentives:
    def test_seller_gets_half_of_consumer_bonus(self, policy: LifecyclePolicy) -> None:
        assert counterpart_incentive(3, ActorClass.CONSUMER, policy) == Decimal("1.50")

    def test_supplier_gets_thirty_percent_of_business_bonus(self, policy: LifecyclePolicy) -> None:
        assert counterpart_incentive(4, ActorClass.BUSINESS, policy) == Decimal("1.20")

    def test_business_priority(self, policy: LifecyclePolicy) -> None:
        assert business_priority(ActorClass.CONSUMER, 200, policy) == BusinessPriority.STANDARD
        assert business_priority(ActorClass.BUSINESS, 60, policy) == BusinessPriority.PRIORITY
        assert business_priority(ActorClass.BUSINESS, 61, policy) == BusinessPriority.URGENT

    def test_business_urgency(self, policy: LifecyclePolicy) -> None:
        assert business_urgency(60, policy) == BusinessUrgency.MEDIUM
        assert business_urgency(61, policy) == BusinessUrgency.HIGH
