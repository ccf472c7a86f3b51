"""
Commitment Command Handlers

Transform commitment commands into events. Handlers read state only through
the projections handed to them and never write; the façade appends the
returned events and applies them back to the projections.

Declined policy checks (margin, advancement threshold) are decided by the
façade before a handler runs. Handlers still refuse anything that would
break an invariant, such as touching a terminal commitment.
"""

from datetime import timedelta

from order_lifecycle.commitments import commands, events
from order_lifecycle.commitments.advancement import (
    business_priority,
    business_urgency,
    counterpart_incentive,
    days_between,
)
from order_lifecycle.commitments.cancellation import (
    business_impact,
    compute_compensation,
    count_cancellation,
)
from order_lifecycle.commitments.models import (
    RFQ,
    AccountStatus,
    AdvancementCheck,
    CancellationCheck,
    RewardStatus,
)
from order_lifecycle.commitments.projections import (
    ActorRecordRegistry,
    AnyCommitment,
    CommitmentRegistry,
    RewardLedger,
    actor_stream_id,
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
from order_lifecycle.kernel.events import Event, create_event
from order_lifecycle.kernel.ids import generate_id
from order_lifecycle.kernel.policy import ActorClass, LifecyclePolicy
from order_lifecycle.kernel.time import TimeProvider, as_utc


class CommitmentCommandHandlers:
    """
    Command handlers for commitments, actor standing and rewards

    Stateless handlers: receive command, validate, emit events.
    """

    def __init__(self, time_provider: TimeProvider, policy: LifecyclePolicy):
        """
        Initialize handlers with time and lifecycle policy

        Args:
            time_provider: Source of current time
            policy: Margins, limits and bonus curves
        """
        self.time_provider = time_provider
        self.policy = policy

    # ========================================================================
    # Opening
    # ========================================================================

    def handle_open_intention(
        self,
        command: commands.OpenIntention,
        command_id: str,
        actor_id: str,
        actor_records: ActorRecordRegistry,
    ) -> list[Event]:
        return self._open(
            ActorClass.CONSUMER, command, command_id, actor_id, actor_records
        )

    def handle_open_rfq(
        self,
        command: commands.OpenRFQ,
        command_id: str,
        actor_id: str,
        actor_records: ActorRecordRegistry,
    ) -> list[Event]:
        return self._open(
            ActorClass.BUSINESS, command, command_id, actor_id, actor_records
        )

    def _open(
        self,
        actor_class: ActorClass,
        command: commands.OpenIntention | commands.OpenRFQ,
        command_id: str,
        actor_id: str,
        actor_records: ActorRecordRegistry,
    ) -> list[Event]:
        """
        Open a commitment for an actor in good standing

        Raises:
            InvalidDeadline: If the deadline is not in the future
            AccountSuspended: If the actor is suspended or banned
        """
        now = self.time_provider.now()
        deadline = as_utc(command.deadline)
        if deadline <= now:
            raise InvalidDeadline(deadline.isoformat(), now.isoformat())

        record = actor_records.get(actor_id)
        if record is not None and not record.can_make_new_orders(now):
            status = record.effective_status(now)
            until = (
                record.suspension_until.isoformat()
                if status == AccountStatus.SUSPENDED and record.suspension_until
                else None
            )
            raise AccountSuspended(actor_id, status.value, until)

        commitment_id = generate_id()
        margin = timedelta(hours=self.policy.cancellation_margin_hours(actor_class))
        payload_model = (
            events.RfqOpened if actor_class is ActorClass.BUSINESS else events.IntentionOpened
        )
        payload = payload_model(
            commitment_id=commitment_id,
            actor_id=actor_id,
            product=command.product,
            quantity=command.quantity,
            target_price=command.target_price,
            deadline=deadline,
            cancellation_deadline=deadline - margin,
            opened_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type=payload_model.__name__,
                stream_id=commitment_id,
                stream_type="commitment",
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=1,
            )
        ]

    def handle_record_rfq_response(
        self,
        command: commands.RecordRfqResponse,
        command_id: str,
        actor_id: str,
        commitment_registry: CommitmentRegistry,
    ) -> list[Event]:
        """Append a supplier response to an open RFQ"""
        now = self.time_provider.now()
        rfq = self._load(command.commitment_id, commitment_registry)
        if not isinstance(rfq, RFQ):
            raise InvariantViolation(
                f"Commitment {command.commitment_id} is a purchase intention, not an RFQ"
            )
        if rfq.is_terminal():
            raise CommitmentTerminal(rfq.commitment_id, rfq.status.value)

        payload = events.RfqResponseRecorded(
            commitment_id=rfq.commitment_id,
            supplier_id=command.supplier_id,
            quoted_price=command.quoted_price,
            responded_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type="RfqResponseRecorded",
                stream_id=rfq.commitment_id,
                stream_type="commitment",
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=rfq.version + 1,
            )
        ]

    # ========================================================================
    # Cancellation
    # ========================================================================

    def handle_cancel(
        self,
        command: commands.CancelCommitment,
        command_id: str,
        actor_id: str,
        check: CancellationCheck,
        commitment_registry: CommitmentRegistry,
        actor_records: ActorRecordRegistry,
    ) -> list[Event]:
        """
        Cancel a commitment and count it against the actor's monthly limit

        Emits, in one batch spanning two streams:
        - CommitmentCancelled on the commitment stream
        - CancellationCounted on the actor stream
        - AccountSuspended on the actor stream, when the limit is exceeded

        Args:
            check: Allowed CancellationCheck computed against the same state
        """
        now = self.time_provider.now()
        commitment = self._load_owned(command.commitment_id, actor_id, commitment_registry)
        if commitment.is_terminal():
            raise CommitmentTerminal(commitment.commitment_id, commitment.status.value)

        actor_class = commitment.actor_class
        hours = check.hours_to_deadline
        record = actor_records.get_or_new(actor_id)
        outcome = count_cancellation(record, actor_class, now, self.policy)

        cancelled = events.CommitmentCancelled(
            commitment_id=commitment.commitment_id,
            actor_id=actor_id,
            actor_class=actor_class,
            reason=command.reason,
            hours_before_deadline=hours,
            penalty_applied=outcome.penalty_applied,
            compensation_required=compute_compensation(commitment, hours, self.policy),
            business_impact=business_impact(actor_class, hours, self.policy),
            cancelled_at=now,
        ).model_dump(mode="json")

        counted = events.CancellationCounted(
            actor_id=actor_id,
            actor_class=actor_class,
            commitment_id=commitment.commitment_id,
            monthly_cancellations=outcome.monthly_cancellations,
            monthly_rfq_cancellations=outcome.monthly_rfq_cancellations,
            last_reset_at=outcome.last_reset_at,
            rolled_over=outcome.rolled_over,
            count=outcome.count,
            limit=outcome.limit,
            counted_at=now,
        ).model_dump(mode="json")

        actor_stream = actor_stream_id(actor_id)
        result = [
            create_event(
                event_id=generate_id(),
                event_type="CommitmentCancelled",
                stream_id=commitment.commitment_id,
                stream_type="commitment",
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=cancelled,
                version=commitment.version + 1,
            ),
            create_event(
                event_id=generate_id(),
                event_type="CancellationCounted",
                stream_id=actor_stream,
                stream_type="actor",
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=counted,
                version=record.version + 1,
            ),
        ]

        if outcome.penalty_applied:
            suspended = events.AccountSuspended(
                actor_id=actor_id,
                actor_class=actor_class,
                suspension_until=outcome.suspension_until,
                suspension_reason=outcome.suspension_reason,
                suspended_at=now,
            ).model_dump(mode="json")
            result.append(
                create_event(
                    event_id=generate_id(),
                    event_type="AccountSuspended",
                    stream_id=actor_stream,
                    stream_type="actor",
                    occurred_at=now,
                    actor_id=actor_id,
                    command_id=command_id,
                    payload=suspended,
                    version=record.version + 2,
                )
            )

        return result

    # ========================================================================
    # Advancement
    # ========================================================================

    def handle_advance(
        self,
        command: commands.AdvanceCommitment,
        command_id: str,
        actor_id: str,
        check: AdvancementCheck,
        commitment_registry: CommitmentRegistry,
        counterpart_id: str | None,
    ) -> list[Event]:
        """
        Move a commitment's deadline earlier

        The first advancement snapshots the current deadline as the original
        date. A reward stream is opened when a counterpart exists.

        Args:
            check: Allowed AdvancementCheck computed against the same state
            counterpart_id: Matching seller or earliest responding supplier
        """
        now = self.time_provider.now()
        commitment = self._load_owned(command.commitment_id, actor_id, commitment_registry)
        if commitment.is_terminal():
            raise CommitmentTerminal(commitment.commitment_id, commitment.status.value)

        actor_class = commitment.actor_class
        new_date = as_utc(command.new_date)
        original_date = commitment.original_date or commitment.deadline
        margin = timedelta(hours=self.policy.cancellation_margin_hours(actor_class))
        urgency = (
            business_urgency(check.days_advanced, self.policy)
            if actor_class is ActorClass.BUSINESS
            else None
        )

        advanced = events.CommitmentAdvanced(
            commitment_id=commitment.commitment_id,
            actor_id=actor_id,
            previous_deadline=commitment.deadline,
            new_deadline=new_date,
            original_date=original_date,
            days_advanced=check.days_advanced,
            total_days_advanced=days_between(original_date, new_date),
            bonus_percent=check.max_bonus_percent,
            cost_savings=check.cost_savings,
            cancellation_deadline=new_date - margin,
            business_urgency=urgency,
            counterpart_id=counterpart_id,
            advanced_at=now,
        ).model_dump(mode="json")

        result = [
            create_event(
                event_id=generate_id(),
                event_type="CommitmentAdvanced",
                stream_id=commitment.commitment_id,
                stream_type="commitment",
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=advanced,
                version=commitment.version + 1,
            )
        ]

        if counterpart_id is not None:
            reward_id = generate_id()
            reward = events.AdvancementRewardCreated(
                reward_id=reward_id,
                actor_id=actor_id,
                commitment_id=commitment.commitment_id,
                counterpart_id=counterpart_id,
                original_date=commitment.deadline,
                new_date=new_date,
                days_advanced=check.days_advanced,
                bonus_discount_percent=check.max_bonus_percent,
                counterpart_incentive_percent=counterpart_incentive(
                    check.max_bonus_percent, actor_class, self.policy
                ),
                cost_savings=check.cost_savings,
                business_priority=business_priority(
                    actor_class, check.days_advanced, self.policy
                ),
                created_at=now,
            ).model_dump(mode="json")
            result.append(
                create_event(
                    event_id=generate_id(),
                    event_type="AdvancementRewardCreated",
                    stream_id=reward_id,
                    stream_type="reward",
                    occurred_at=now,
                    actor_id=actor_id,
                    command_id=command_id,
                    payload=reward,
                    version=1,
                )
            )

        return result

    # ========================================================================
    # Completion & account standing
    # ========================================================================

    def handle_complete(
        self,
        command: commands.CompleteCommitment,
        command_id: str,
        actor_id: str | None,
        commitment_registry: CommitmentRegistry,
    ) -> list[Event]:
        now = self.time_provider.now()
        commitment = self._load(command.commitment_id, commitment_registry)
        if commitment.is_terminal():
            raise CommitmentTerminal(commitment.commitment_id, commitment.status.value)

        payload = events.CommitmentCompleted(
            commitment_id=commitment.commitment_id,
            completed_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type="CommitmentCompleted",
                stream_id=commitment.commitment_id,
                stream_type="commitment",
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=commitment.version + 1,
            )
        ]

    def handle_ban_actor(
        self,
        command: commands.BanActor,
        command_id: str,
        actor_id: str | None,
        actor_records: ActorRecordRegistry,
    ) -> list[Event]:
        """Ban an actor; banning an already banned actor emits nothing"""
        now = self.time_provider.now()
        record = actor_records.get_or_new(command.actor_id)
        if record.account_status == AccountStatus.BANNED:
            return []

        payload = events.ActorBanned(
            actor_id=command.actor_id,
            reason=command.reason,
            banned_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type="ActorBanned",
                stream_id=actor_stream_id(command.actor_id),
                stream_type="actor",
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=record.version + 1,
            )
        ]

    def handle_set_business_cancellation_limit(
        self,
        command: commands.SetBusinessCancellationLimit,
        command_id: str,
        actor_id: str | None,
        actor_records: ActorRecordRegistry,
    ) -> list[Event]:
        now = self.time_provider.now()
        record = actor_records.get_or_new(command.actor_id)

        payload = events.BusinessCancellationLimitSet(
            actor_id=command.actor_id,
            limit=command.limit,
            set_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type="BusinessCancellationLimitSet",
                stream_id=actor_stream_id(command.actor_id),
                stream_type="actor",
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=record.version + 1,
            )
        ]

    # ========================================================================
    # Rewards
    # ========================================================================

    def handle_approve_reward(
        self,
        command: commands.ApproveReward,
        command_id: str,
        actor_id: str | None,
        reward_ledger: RewardLedger,
    ) -> list[Event]:
        return self._move_reward(
            command.reward_id,
            RewardStatus.PENDING,
            RewardStatus.APPROVED,
            command_id,
            actor_id,
            reward_ledger,
        )

    def handle_redeem_reward(
        self,
        command: commands.RedeemReward,
        command_id: str,
        actor_id: str | None,
        reward_ledger: RewardLedger,
    ) -> list[Event]:
        return self._move_reward(
            command.reward_id,
            RewardStatus.APPROVED,
            RewardStatus.REDEEMED,
            command_id,
            actor_id,
            reward_ledger,
        )

    def _move_reward(
        self,
        reward_id: str,
        required: RewardStatus,
        target: RewardStatus,
        command_id: str,
        actor_id: str | None,
        reward_ledger: RewardLedger,
    ) -> list[Event]:
        now = self.time_provider.now()
        reward = reward_ledger.get(reward_id)
        if reward is None:
            raise RewardNotFound(reward_id)
        if reward.status != required:
            raise InvalidRewardTransition(reward_id, reward.status.value, target.value)

        if target == RewardStatus.APPROVED:
            event_type = "AdvancementRewardApproved"
            payload = events.AdvancementRewardApproved(
                reward_id=reward_id, approved_at=now
            ).model_dump(mode="json")
        else:
            event_type = "AdvancementRewardRedeemed"
            payload = events.AdvancementRewardRedeemed(
                reward_id=reward_id, redeemed_at=now
            ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type=event_type,
                stream_id=reward_id,
                stream_type="reward",
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=reward.version + 1,
            )
        ]

    # ========================================================================
    # Helpers
    # ========================================================================

    def _load(self, commitment_id: str, registry: CommitmentRegistry) -> AnyCommitment:
        commitment = registry.get(commitment_id)
        if commitment is None:
            raise CommitmentNotFound(commitment_id)
        return commitment

    def _load_owned(
        self, commitment_id: str, actor_id: str, registry: CommitmentRegistry
    ) -> AnyCommitment:
        commitment = self._load(commitment_id, registry)
        if commitment.actor_id != actor_id:
            raise NotCommitmentOwner(commitment_id, actor_id)
        return commitment
