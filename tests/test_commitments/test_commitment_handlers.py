"""
Commitment Command Handler Tests

Handlers read projections and return events; these tests apply the returned
events back to the projections by hand, the way the engine does.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from order_lifecycle.commitments.cancellation import evaluate_cancellation
from order_lifecycle.commitments.advancement import evaluate_advancement
from order_lifecycle.commitments.commands import (
    AdvanceCommitment,
    ApproveReward,
    BanActor,
    CancelCommitment,
    CompleteCommitment,
    OpenIntention,
    OpenRFQ,
    RecordRfqResponse,
    RedeemReward,
)
from order_lifecycle.commitments.handlers import CommitmentCommandHandlers
from order_lifecycle.commitments.models import (
    RFQ,
    AccountStatus,
    CommitmentStatus,
    PurchaseIntention,
    RewardStatus,
)
from order_lifecycle.commitments.projections import (
    ActorRecordRegistry,
    CancellationLog,
    CommitmentRegistry,
    RewardLedger,
)
from order_lifecycle.kernel.errors import (
    AccountSuspended,
    CommitmentNotFound,
    CommitmentTerminal,
    InvalidDeadline,
    InvalidRewardTransition,
    InvariantViolation,
    NotCommitmentOwner,
    RewardNotFound,
)
from order_lifecycle.kernel.ids import generate_id
from order_lifecycle.kernel.policy import LifecyclePolicy
from order_lifecycle.kernel.time import TestTimeProvider
from tests.helpers import LAPTOP, PHONE


class World:
    """Handlers plus every commitment projection, wired like the engine"""

    def __init__(self, test_time: TestTimeProvider, policy: LifecyclePolicy) -> None:
        self.time = test_time
        self.policy = policy
        self.handlers = CommitmentCommandHandlers(test_time, policy)
        self.commitments = CommitmentRegistry()
        self.actors = ActorRecordRegistry()
        self.cancellations = CancellationLog()
        self.rewards = RewardLedger()

    def apply(self, events):
        for event in events:
            for projection in (self.commitments, self.actors, self.cancellations, self.rewards):
                projection.apply_event(event)
        return events

    def open_intention(self, actor_id="buyer-1", days=60, target_price="999"):
        command = OpenIntention(
            product=PHONE,
            deadline=self.time.now() + timedelta(days=days),
            target_price=target_price,
        )
        events = self.apply(
            self.handlers.handle_open_intention(command, generate_id(), actor_id, self.actors)
        )
        return events[0].stream_id

    def open_rfq(self, actor_id="business-1", days=60, target_price="2000", quantity=1):
        command = OpenRFQ(
            product=LAPTOP,
            deadline=self.time.now() + timedelta(days=days),
            target_price=target_price,
            quantity=quantity,
        )
        events = self.apply(
            self.handlers.handle_open_rfq(command, generate_id(), actor_id, self.actors)
        )
        return events[0].stream_id

    def cancel(self, commitment_id, actor_id="buyer-1"):
        commitment = self.commitments.get(commitment_id)
        check = evaluate_cancellation(commitment, self.time.now(), self.policy)
        return self.apply(
            self.handlers.handle_cancel(
                CancelCommitment(commitment_id=commitment_id, reason="changed plans"),
                generate_id(),
                actor_id,
                check,
                self.commitments,
                self.actors,
            )
        )

    def advance(self, commitment_id, new_date, actor_id="buyer-1", counterpart_id=None):
        commitment = self.commitments.get(commitment_id)
        check = evaluate_advancement(commitment, new_date, self.time.now(), self.policy)
        return self.apply(
            self.handlers.handle_advance(
                AdvanceCommitment(commitment_id=commitment_id, new_date=new_date),
                generate_id(),
                actor_id,
                check,
                self.commitments,
                counterpart_id,
            )
        )


@pytest.fixture
def world(test_time: TestTimeProvider, policy: LifecyclePolicy) -> World:
    return World(test_time, policy)


class TestOpening:
    def test_open_intention(self, world: World, test_time: TestTimeProvider) -> None:
        commitment_id = world.open_intention(days=60)

        intention = world.commitments.get(commitment_id)
        assert isinstance(intention, PurchaseIntention)
        assert intention.kind == "intention"
        assert intention.status == CommitmentStatus.ACTIVE
        assert intention.deadline == test_time.now() + timedelta(days=60)
        assert intention.cancellation_deadline == intention.deadline - timedelta(hours=24)
        assert intention.version == 1

    def test_open_rfq_uses_business_margin(self, world: World) -> None:
        rfq = world.commitments.get(world.open_rfq())

        assert isinstance(rfq, RFQ)
        assert rfq.kind == "rfq"
        assert rfq.cancellation_deadline == rfq.deadline - timedelta(hours=48)

    def test_date_deadline_is_midnight_utc(self, world: World, test_time: TestTimeProvider) -> None:
        command = OpenIntention(product=PHONE, deadline=date(2025, 6, 1), target_price="999")

        events = world.handlers.handle_open_intention(command, generate_id(), "buyer-1", world.actors)

        assert datetime.fromisoformat(events[0].payload["deadline"]) == datetime(
            2025, 6, 1, tzinfo=timezone.utc
        )

    def test_past_deadline_rejected(self, world: World, test_time: TestTimeProvider) -> None:
        command = OpenIntention(
            product=PHONE, deadline=test_time.now() - timedelta(hours=1), target_price="999"
        )

        with pytest.raises(InvalidDeadline):
            world.handlers.handle_open_intention(command, generate_id(), "buyer-1", world.actors)

    def test_banned_actor_cannot_open(self, world: World) -> None:
        world.apply(
            world.handlers.handle_ban_actor(
                BanActor(actor_id="buyer-1", reason="fraud"), generate_id(), "ops", world.actors
            )
        )

        with pytest.raises(AccountSuspended) as exc_info:
            world.open_intention()
        assert "banned" in str(exc_info.value)

    def test_rfq_response_recorded(self, world: World, test_time: TestTimeProvider) -> None:
        rfq_id = world.open_rfq()
        world.apply(
            world.handlers.handle_record_rfq_response(
                RecordRfqResponse(commitment_id=rfq_id, supplier_id="supplier-1", quoted_price="1900"),
                generate_id(),
                "supplier-1",
                world.commitments,
            )
        )

        rfq = world.commitments.get(rfq_id)
        assert rfq.first_responder() == "supplier-1"
        assert rfq.responses[0].quoted_price == Decimal("1900")
        assert rfq.version == 2

    def test_rfq_response_on_intention_rejected(self, world: World) -> None:
        intention_id = world.open_intention()

        with pytest.raises(InvariantViolation):
            world.handlers.handle_record_rfq_response(
                RecordRfqResponse(commitment_id=intention_id, supplier_id="supplier-1"),
                generate_id(),
                "supplier-1",
                world.commitments,
            )


class TestCancel:
    def test_cancel_touches_commitment_and_actor_streams(self, world: World) -> None:
        commitment_id = world.open_intention()

        events = world.cancel(commitment_id)

        assert [e.event_type for e in events] == ["CommitmentCancelled", "CancellationCounted"]
        assert events[0].stream_id == commitment_id
        assert events[0].version == 2
        assert events[1].stream_id == "actor-buyer-1"
        assert events[1].version == 1
        assert len({e.command_id for e in events}) == 1

        assert world.commitments.get(commitment_id).status == CommitmentStatus.CANCELLED
        assert world.actors.get("buyer-1").monthly_cancellations == 1
        assert world.cancellations.for_commitment(commitment_id).reason == "changed plans"

    def test_fourth_cancellation_suspends(self, world: World, test_time: TestTimeProvider) -> None:
        ids = [world.open_intention() for _ in range(4)]
        for commitment_id in ids[:3]:
            world.cancel(commitment_id)

        events = world.cancel(ids[3])

        assert events[-1].event_type == "AccountSuspended"
        assert events[-1].version == 5
        record = world.actors.get("buyer-1")
        assert record.account_status == AccountStatus.SUSPENDED
        assert record.suspension_until == test_time.now() + timedelta(days=30)
        assert world.cancellations.for_commitment(ids[3]).penalty_applied

    def test_cancel_terminal_rejected(self, world: World) -> None:
        commitment_id = world.open_intention()
        world.cancel(commitment_id)

        with pytest.raises(CommitmentTerminal):
            world.cancel(commitment_id)

    def test_cancel_by_other_actor_rejected(self, world: World) -> None:
        commitment_id = world.open_intention(actor_id="buyer-1")

        with pytest.raises(NotCommitmentOwner):
            world.cancel(commitment_id, actor_id="buyer-2")

    def test_cancel_unknown_commitment(self, world: World) -> None:
        with pytest.raises(CommitmentNotFound):
            world.handlers.handle_cancel(
                CancelCommitment(commitment_id="missing"),
                generate_id(),
                "buyer-1",
                None,
                world.commitments,
                world.actors,
            )

    def test_business_cancellation_records_compensation(self, world: World, test_time: TestTimeProvider) -> None:
        rfq_id = world.open_rfq(actor_id="business-1", days=60, target_price="2000")
        test_time.set_time(world.commitments.get(rfq_id).deadline - timedelta(hours=50))

        world.cancel(rfq_id, actor_id="business-1")

        entry = world.cancellations.for_commitment(rfq_id)
        assert entry.hours_before_deadline == 50
        assert entry.compensation_required == Decimal("200.00")
        assert entry.business_impact.value == "high"


class TestAdvance:
    def test_first_advancement_snapshots_original_date(self, world: World, test_time: TestTimeProvider) -> None:
        commitment_id = world.open_intention(days=200)
        original = world.commitments.get(commitment_id).deadline

        world.advance(commitment_id, original - timedelta(days=61))

        intention = world.commitments.get(commitment_id)
        assert intention.status == CommitmentStatus.ADVANCED
        assert intention.original_date == original
        assert intention.deadline == original - timedelta(days=61)
        assert intention.days_advanced == 61
        assert intention.advancement_bonus_percent == 2
        assert intention.cancellation_deadline == intention.deadline - timedelta(hours=24)

    def test_second_advancement_keeps_original_date(self, world: World) -> None:
        commitment_id = world.open_intention(days=200)
        original = world.commitments.get(commitment_id).deadline

        world.advance(commitment_id, original - timedelta(days=61))
        world.advance(commitment_id, original - timedelta(days=101))

        intention = world.commitments.get(commitment_id)
        assert intention.original_date == original
        assert intention.days_advanced == 101
        assert intention.advancement_bonus_percent == 1

    def test_reward_created_with_counterpart(self, world: World) -> None:
        commitment_id = world.open_intention(days=200)
        deadline = world.commitments.get(commitment_id).deadline

        events = world.advance(commitment_id, deadline - timedelta(days=90), counterpart_id="seller-A")

        assert [e.event_type for e in events] == ["CommitmentAdvanced", "AdvancementRewardCreated"]
        reward = world.rewards.get(events[1].stream_id)
        assert reward.counterpart_id == "seller-A"
        assert reward.bonus_discount_percent == 3
        assert reward.counterpart_incentive_percent == Decimal("1.50")
        assert reward.original_date == deadline
        assert reward.status == RewardStatus.PENDING

    def test_no_reward_without_counterpart(self, world: World) -> None:
        commitment_id = world.open_intention(days=200)
        deadline = world.commitments.get(commitment_id).deadline

        events = world.advance(commitment_id, deadline - timedelta(days=90))

        assert [e.event_type for e in events] == ["CommitmentAdvanced"]

    def test_rfq_advancement_sets_urgency(self, world: World) -> None:
        rfq_id = world.open_rfq(days=200)
        deadline = world.commitments.get(rfq_id).deadline

        world.advance(rfq_id, deadline - timedelta(days=75), actor_id="business-1")

        assert world.commitments.get(rfq_id).business_urgency.value == "high"

    def test_advance_completed_rejected(self, world: World) -> None:
        commitment_id = world.open_intention(days=200)
        world.apply(
            world.handlers.handle_complete(
                CompleteCommitment(commitment_id=commitment_id), generate_id(), None, world.commitments
            )
        )
        deadline = world.commitments.get(commitment_id).deadline

        with pytest.raises(CommitmentTerminal):
            world.advance(commitment_id, deadline - timedelta(days=60))


class TestRewardsAndStanding:
    def test_reward_approve_then_redeem(self, world: World) -> None:
        commitment_id = world.open_intention(days=200)
        deadline = world.commitments.get(commitment_id).deadline
        reward_id = world.advance(
            commitment_id, deadline - timedelta(days=90), counterpart_id="seller-A"
        )[1].stream_id

        world.apply(world.handlers.handle_approve_reward(
            ApproveReward(reward_id=reward_id), generate_id(), "ops", world.rewards))
        world.apply(world.handlers.handle_redeem_reward(
            RedeemReward(reward_id=reward_id), generate_id(), "ops", world.rewards))

        reward = world.rewards.get(reward_id)
        assert reward.status == RewardStatus.REDEEMED
        assert reward.version == 3

    def test_redeem_pending_reward_rejected(self, world: World) -> None:
        commitment_id = world.open_intention(days=200)
        deadline = world.commitments.get(commitment_id).deadline
        reward_id = world.advance(
            commitment_id, deadline - timedelta(days=90), counterpart_id="seller-A"
        )[1].stream_id

        with pytest.raises(InvalidRewardTransition):
            world.handlers.handle_redeem_reward(
                RedeemReward(reward_id=reward_id), generate_id(), "ops", world.rewards
            )

    def test_unknown_reward(self, world: World) -> None:
        with pytest.raises(RewardNotFound):
            world.handlers.handle_approve_reward(
                ApproveReward(reward_id="missing"), generate_id(), "ops", world.rewards
            )

    def test_ban_is_idempotent(self, world: World) -> None:
        command = BanActor(actor_id="buyer-1", reason="fraud")
        world.apply(world.handlers.handle_ban_actor(command, generate_id(), "ops", world.actors))

        assert world.handlers.handle_ban_actor(command, generate_id(), "ops", world.actors) == []

    def test_ban_outranks_suspension(self, world: World, test_time: TestTimeProvider) -> None:
        ids = [world.open_intention() for _ in range(4)]
        world.apply(world.handlers.handle_ban_actor(
            BanActor(actor_id="buyer-1", reason="fraud"), generate_id(), "ops", world.actors))
        for commitment_id in ids:
            world.cancel(commitment_id)

        record = world.actors.get("buyer-1")
        assert record.account_status == AccountStatus.BANNED
        assert not record.can_make_new_orders(test_time.now() + timedelta(days=365))
