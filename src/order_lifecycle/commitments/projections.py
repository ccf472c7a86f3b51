"""
Commitment Projections - Read models built from events

Each projection keeps typed models keyed by id and records the stream
version it has seen, which handlers use as the expected version of the
next append.
"""

from datetime import datetime
from typing import Any

from pydantic import TypeAdapter

from order_lifecycle.commitments.models import (
    RFQ,
    AccountStatus,
    ActorCancellationRecord,
    AdvancementReward,
    BusinessUrgency,
    CancellationRecord,
    Commitment,
    CommitmentStatus,
    PurchaseIntention,
    RewardStatus,
    RfqResponse,
)
from order_lifecycle.kernel.events import Event

AnyCommitment = PurchaseIntention | RFQ

# Opened events pick their variant through the "kind" discriminator
_commitment_adapter: TypeAdapter[AnyCommitment] = TypeAdapter(Commitment)


def actor_stream_id(actor_id: str) -> str:
    return f"actor-{actor_id}"


def _ts(value: Any) -> datetime:
    return datetime.fromisoformat(value) if isinstance(value, str) else value


class CommitmentRegistry:
    """
    Projection: every purchase intention and RFQ with its current state

    Rebuilt from IntentionOpened, RfqOpened, RfqResponseRecorded,
    CommitmentCancelled, CommitmentAdvanced and CommitmentCompleted.
    """

    def __init__(self) -> None:
        self.commitments: dict[str, AnyCommitment] = {}

    def apply_event(self, event: Event) -> None:
        """Apply an event to update projection state"""
        if event.event_type in ("IntentionOpened", "RfqOpened"):
            self._apply_opened(event)
        elif event.event_type == "RfqResponseRecorded":
            self._apply_rfq_response(event)
        elif event.event_type == "CommitmentCancelled":
            self._apply_cancelled(event)
        elif event.event_type == "CommitmentAdvanced":
            self._apply_advanced(event)
        elif event.event_type == "CommitmentCompleted":
            self._apply_completed(event)

    def _apply_opened(self, event: Event) -> None:
        payload = event.payload
        self.commitments[payload["commitment_id"]] = _commitment_adapter.validate_python(
            {
                "kind": "rfq" if event.event_type == "RfqOpened" else "intention",
                "commitment_id": payload["commitment_id"],
                "actor_id": payload["actor_id"],
                "product": payload["product"],
                "quantity": payload["quantity"],
                "target_price": payload["target_price"],
                "deadline": payload["deadline"],
                "cancellation_deadline": payload["cancellation_deadline"],
                "created_at": payload["opened_at"],
                "version": event.version,
            }
        )

    def _apply_rfq_response(self, event: Event) -> None:
        rfq = self.commitments.get(event.payload["commitment_id"])
        if not isinstance(rfq, RFQ):
            return
        rfq.responses.append(
            RfqResponse(
                supplier_id=event.payload["supplier_id"],
                quoted_price=event.payload.get("quoted_price"),
                responded_at=event.payload["responded_at"],
            )
        )
        rfq.version = event.version

    def _apply_cancelled(self, event: Event) -> None:
        commitment = self.commitments.get(event.payload["commitment_id"])
        if commitment is None:
            return
        commitment.status = CommitmentStatus.CANCELLED
        commitment.cancelled_at = _ts(event.payload["cancelled_at"])
        commitment.version = event.version

    def _apply_advanced(self, event: Event) -> None:
        payload = event.payload
        commitment = self.commitments.get(payload["commitment_id"])
        if commitment is None:
            return
        # original_date is written once, on the first advancement
        if commitment.original_date is None:
            commitment.original_date = _ts(payload["original_date"])
        commitment.deadline = _ts(payload["new_deadline"])
        commitment.cancellation_deadline = _ts(payload["cancellation_deadline"])
        commitment.status = CommitmentStatus.ADVANCED
        commitment.days_advanced = max(
            commitment.days_advanced, payload["total_days_advanced"]
        )
        commitment.advancement_bonus_percent = payload["bonus_percent"]
        if isinstance(commitment, RFQ) and payload.get("business_urgency"):
            commitment.business_urgency = BusinessUrgency(payload["business_urgency"])
        commitment.version = event.version

    def _apply_completed(self, event: Event) -> None:
        commitment = self.commitments.get(event.payload["commitment_id"])
        if commitment is None:
            return
        commitment.status = CommitmentStatus.COMPLETED
        commitment.completed_at = _ts(event.payload["completed_at"])
        commitment.version = event.version

    def get(self, commitment_id: str) -> AnyCommitment | None:
        """Get commitment by ID"""
        return self.commitments.get(commitment_id)

    def list_by_actor(self, actor_id: str) -> list[AnyCommitment]:
        return [c for c in self.commitments.values() if c.actor_id == actor_id]

    def list_open_intentions(self, product_key: str) -> list[PurchaseIntention]:
        """Active or advanced purchase intentions for one product"""
        return [
            c
            for c in self.commitments.values()
            if isinstance(c, PurchaseIntention)
            and c.product.key == product_key
            and c.is_open()
        ]


class ActorRecordRegistry:
    """
    Projection: per-actor cancellation counters and account standing

    Events on the actor stream carry absolute values, so applying is a plain
    overwrite.
    """

    def __init__(self) -> None:
        self.records: dict[str, ActorCancellationRecord] = {}

    def _record(self, actor_id: str) -> ActorCancellationRecord:
        if actor_id not in self.records:
            self.records[actor_id] = ActorCancellationRecord(actor_id=actor_id)
        return self.records[actor_id]

    def apply_event(self, event: Event) -> None:
        """Apply an event to update projection state"""
        if event.stream_type != "actor":
            return
        payload = event.payload
        record = self._record(payload["actor_id"])

        if event.event_type == "CancellationCounted":
            record.monthly_cancellations = payload["monthly_cancellations"]
            record.monthly_rfq_cancellations = payload["monthly_rfq_cancellations"]
            record.last_reset_at = _ts(payload["last_reset_at"])
        elif event.event_type == "AccountSuspended":
            # A ban outranks any suspension
            if record.account_status != AccountStatus.BANNED:
                record.account_status = AccountStatus.SUSPENDED
            record.suspension_until = _ts(payload["suspension_until"])
            record.suspension_reason = payload["suspension_reason"]
        elif event.event_type == "ActorBanned":
            record.account_status = AccountStatus.BANNED
            record.suspension_reason = payload["reason"]
        elif event.event_type == "BusinessCancellationLimitSet":
            record.business_cancellation_limit = payload["limit"]

        record.version = event.version

    def get(self, actor_id: str) -> ActorCancellationRecord | None:
        return self.records.get(actor_id)

    def get_or_new(self, actor_id: str) -> ActorCancellationRecord:
        """Stored record, or a blank version-0 record for a first-time actor"""
        return self.records.get(actor_id) or ActorCancellationRecord(actor_id=actor_id)


class CancellationLog:
    """Projection: append-only list of cancellations"""

    def __init__(self) -> None:
        self.entries: list[CancellationRecord] = []

    def apply_event(self, event: Event) -> None:
        if event.event_type == "CommitmentCancelled":
            self.entries.append(CancellationRecord.model_validate(event.payload))

    def for_actor(self, actor_id: str) -> list[CancellationRecord]:
        return [e for e in self.entries if e.actor_id == actor_id]

    def for_commitment(self, commitment_id: str) -> CancellationRecord | None:
        return next((e for e in self.entries if e.commitment_id == commitment_id), None)


class RewardLedger:
    """Projection: advancement rewards and their approval state"""

    def __init__(self) -> None:
        self.rewards: dict[str, AdvancementReward] = {}

    def apply_event(self, event: Event) -> None:
        """Apply an event to update projection state"""
        payload = event.payload
        if event.event_type == "AdvancementRewardCreated":
            self.rewards[payload["reward_id"]] = AdvancementReward.model_validate(
                {**payload, "version": event.version}
            )
        elif event.event_type == "AdvancementRewardApproved":
            reward = self.rewards.get(payload["reward_id"])
            if reward is not None:
                reward.status = RewardStatus.APPROVED
                reward.approved_at = _ts(payload["approved_at"])
                reward.version = event.version
        elif event.event_type == "AdvancementRewardRedeemed":
            reward = self.rewards.get(payload["reward_id"])
            if reward is not None:
                reward.status = RewardStatus.REDEEMED
                reward.redeemed_at = _ts(payload["redeemed_at"])
                reward.version = event.version

    def get(self, reward_id: str) -> AdvancementReward | None:
        return self.rewards.get(reward_id)

    def for_actor(self, actor_id: str) -> list[AdvancementReward]:
        return sorted(
            (r for r in self.rewards.values() if r.actor_id == actor_id),
            key=lambda r: r.created_at,
        )

    def for_commitment(self, commitment_id: str) -> list[AdvancementReward]:
        return sorted(
            (r for r in self.rewards.values() if r.commitment_id == commitment_id),
            key=lambda r: r.created_at,
        )
