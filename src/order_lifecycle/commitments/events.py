"""
Commitment Events

Immutable facts about commitments, actor cancellation records and
advancement rewards. Actor events carry the record's absolute post-state
(counters, reset timestamp) so replay never re-derives policy decisions.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from order_lifecycle.commitments.models import (
    BusinessImpact,
    BusinessPriority,
    BusinessUrgency,
    ProductKey,
)
from order_lifecycle.kernel.policy import ActorClass


# ============================================================================
# Commitment stream
# ============================================================================


class IntentionOpened(BaseModel):
    commitment_id: str
    actor_id: str
    product: ProductKey
    quantity: int
    target_price: Decimal
    deadline: datetime
    cancellation_deadline: datetime
    opened_at: datetime


class RfqOpened(BaseModel):
    commitment_id: str
    actor_id: str
    product: ProductKey
    quantity: int
    target_price: Decimal
    deadline: datetime
    cancellation_deadline: datetime
    opened_at: datetime


class RfqResponseRecorded(BaseModel):
    commitment_id: str
    supplier_id: str
    quoted_price: Decimal | None = None
    responded_at: datetime


class CommitmentCancelled(BaseModel):
    """Commitment withdrawn - doubles as the cancellation log entry"""

    commitment_id: str
    actor_id: str
    actor_class: ActorClass
    reason: str
    hours_before_deadline: int
    penalty_applied: bool
    compensation_required: Decimal | None = None
    business_impact: BusinessImpact | None = None
    cancelled_at: datetime


class CommitmentAdvanced(BaseModel):
    commitment_id: str
    actor_id: str
    previous_deadline: datetime
    new_deadline: datetime
    original_date: datetime = Field(..., description="Deadline before any advancement")
    days_advanced: int = Field(..., description="Displacement of this call")
    total_days_advanced: int = Field(..., description="Displacement from original_date")
    bonus_percent: int
    cost_savings: Decimal | None = None
    cancellation_deadline: datetime
    business_urgency: BusinessUrgency | None = None
    counterpart_id: str | None = None
    advanced_at: datetime


class CommitmentCompleted(BaseModel):
    commitment_id: str
    completed_at: datetime


# ============================================================================
# Actor stream
# ============================================================================


class CancellationCounted(BaseModel):
    actor_id: str
    actor_class: ActorClass
    commitment_id: str
    monthly_cancellations: int
    monthly_rfq_cancellations: int
    last_reset_at: datetime
    rolled_over: bool
    count: int
    limit: int
    counted_at: datetime


class AccountSuspended(BaseModel):
    actor_id: str
    actor_class: ActorClass
    suspension_until: datetime
    suspension_reason: str
    suspended_at: datetime


class ActorBanned(BaseModel):
    actor_id: str
    reason: str
    banned_at: datetime


class BusinessCancellationLimitSet(BaseModel):
    actor_id: str
    limit: int
    set_at: datetime


# ============================================================================
# Reward stream
# ============================================================================


class AdvancementRewardCreated(BaseModel):
    reward_id: str
    actor_id: str
    commitment_id: str
    counterpart_id: str | None = None
    original_date: datetime
    new_date: datetime
    days_advanced: int
    bonus_discount_percent: int
    counterpart_incentive_percent: Decimal
    cost_savings: Decimal | None = None
    business_priority: BusinessPriority
    created_at: datetime


class AdvancementRewardApproved(BaseModel):
    reward_id: str
    approved_at: datetime


class AdvancementRewardRedeemed(BaseModel):
    reward_id: str
    redeemed_at: datetime
