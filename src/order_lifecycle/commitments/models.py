"""
Commitment Domain Models

A commitment is a buyer's purchase intention or a business's request for
quote. Both variants share one lifecycle:

    ACTIVE ──advance──→ ADVANCED ──advance──→ ADVANCED
      │                    │
      ├──cancel──→ CANCELLED (terminal)
      └──complete─→ COMPLETED (terminal)

The actor cancellation record is the shared, per-actor state that every
cancellation touches: monthly counters, rollover timestamp, suspension.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator

from order_lifecycle.kernel.policy import ActorClass
from order_lifecycle.kernel.time import months_between


class CommitmentStatus(str, Enum):
    ACTIVE = "active"
    ADVANCED = "advanced"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


TERMINAL_STATUSES = frozenset({CommitmentStatus.CANCELLED, CommitmentStatus.COMPLETED})


class AccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    BANNED = "banned"


class RewardStatus(str, Enum):
    """pending → approved → redeemed, in that order only"""

    PENDING = "pending"
    APPROVED = "approved"
    REDEEMED = "redeemed"


class BusinessPriority(str, Enum):
    STANDARD = "standard"  # consumer advancements
    PRIORITY = "priority"
    URGENT = "urgent"


class BusinessImpact(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"


class BusinessUrgency(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"


class ProductKey(BaseModel):
    """
    Product identity shared by commitments and offers

    Two offers compete in the same closure round only if their product keys
    are equal.
    """

    category: str = Field(..., min_length=1)
    product_name: str = Field(..., min_length=1)

    model_config = {"frozen": True}

    @field_validator("category", "product_name")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Product key parts cannot be blank")
        return v

    @property
    def key(self) -> str:
        return f"{self.category}:{self.product_name}"

    @classmethod
    def parse(cls, key: str) -> "ProductKey":
        """Parse 'category:product name' (first colon splits)"""
        category, sep, product_name = key.partition(":")
        if not sep:
            raise ValueError(f"Product key '{key}' must look like 'category:product'")
        return cls(category=category, product_name=product_name)

    def __str__(self) -> str:
        return self.key


class RfqResponse(BaseModel):
    """A supplier's answer to an RFQ"""

    supplier_id: str
    quoted_price: Decimal | None = None
    responded_at: datetime


class CommitmentBase(BaseModel):
    """
    State shared by both commitment variants

    ``deadline`` moves on advancement; ``original_date`` is captured on the
    first advancement and never written again.
    """

    commitment_id: str
    actor_id: str
    product: ProductKey
    quantity: int = Field(default=1, ge=1)
    target_price: Decimal = Field(..., ge=0)
    deadline: datetime
    original_date: datetime | None = None
    status: CommitmentStatus = CommitmentStatus.ACTIVE
    days_advanced: int = Field(
        default=0,
        ge=0,
        description="Total displacement from original_date in whole days",
    )
    advancement_bonus_percent: int = Field(default=0, ge=0)
    cancellation_deadline: datetime
    created_at: datetime
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None
    version: int = 0

    @property
    def actor_class(self) -> ActorClass:
        raise NotImplementedError

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_open(self) -> bool:
        """Active or advanced - still counts toward a buyer pool"""
        return not self.is_terminal()


class PurchaseIntention(CommitmentBase):
    """A consumer's pledge to buy a product by a target date"""

    kind: Literal["intention"] = "intention"

    @property
    def actor_class(self) -> ActorClass:
        return ActorClass.CONSUMER


class RFQ(CommitmentBase):
    """A business's request for quote, answered by suppliers"""

    kind: Literal["rfq"] = "rfq"
    responses: list[RfqResponse] = Field(default_factory=list)
    business_urgency: BusinessUrgency | None = None

    @property
    def actor_class(self) -> ActorClass:
        return ActorClass.BUSINESS

    def first_responder(self) -> str | None:
        """Supplier who answered first - the counterpart for advancement incentives"""
        if not self.responses:
            return None
        return min(self.responses, key=lambda r: r.responded_at).supplier_id


Commitment = Annotated[PurchaseIntention | RFQ, Field(discriminator="kind")]


class ActorCancellationRecord(BaseModel):
    """
    Per-actor cancellation counters and account standing

    Counters belong to the calendar month of ``last_reset_at``; a
    cancellation in a later month resets them before counting.
    """

    actor_id: str
    monthly_cancellations: int = Field(default=0, ge=0)
    monthly_rfq_cancellations: int = Field(default=0, ge=0)
    last_reset_at: datetime | None = None
    account_status: AccountStatus = AccountStatus.ACTIVE
    suspension_until: datetime | None = None
    suspension_reason: str | None = None
    business_cancellation_limit: int | None = Field(
        default=None,
        ge=0,
        description="Per-actor override of the business monthly limit",
    )
    version: int = 0

    def is_suspended(self, now: datetime) -> bool:
        return (
            self.account_status == AccountStatus.SUSPENDED
            and self.suspension_until is not None
            and now < self.suspension_until
        )

    def effective_status(self, now: datetime) -> AccountStatus:
        """Status as of ``now`` - an expired suspension reads as active"""
        if self.account_status == AccountStatus.SUSPENDED and not self.is_suspended(now):
            return AccountStatus.ACTIVE
        return self.account_status

    def can_make_new_orders(self, now: datetime) -> bool:
        return self.effective_status(now) == AccountStatus.ACTIVE

    def counters_as_of(self, now: datetime) -> tuple[int, int]:
        """(consumer, business) counters, zeroed once a month boundary has passed"""
        if self.last_reset_at is None or months_between(self.last_reset_at, now) >= 1:
            return 0, 0
        return self.monthly_cancellations, self.monthly_rfq_cancellations


class CancellationRecord(BaseModel):
    """One entry in the append-only cancellation log"""

    commitment_id: str
    actor_id: str
    actor_class: ActorClass
    reason: str
    hours_before_deadline: int
    penalty_applied: bool
    compensation_required: Decimal | None = None
    business_impact: BusinessImpact | None = None
    cancelled_at: datetime


class AdvancementReward(BaseModel):
    """Discount earned by advancing a commitment, shared with the counterpart"""

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
    status: RewardStatus = RewardStatus.PENDING
    created_at: datetime
    approved_at: datetime | None = None
    redeemed_at: datetime | None = None
    version: int = 0


# ============================================================================
# Operation results
# ============================================================================


class CancellationCheck(BaseModel):
    """Answer to 'may this commitment be cancelled right now?'"""

    allowed: bool
    hours_to_deadline: int
    reason: str | None = None


class CancellationResult(BaseModel):
    success: bool
    penalty_applied: bool = False
    compensation_required: Decimal | None = None
    reason: str | None = None
    account_status: AccountStatus | None = None
    suspension_until: datetime | None = None


class AdvancementCheck(BaseModel):
    """Answer to 'may this commitment move to new_date, and for what bonus?'"""

    allowed: bool
    max_bonus_percent: int
    days_advanced: int
    cost_savings: Decimal | None = None
    reason: str | None = None


class AdvancementResult(BaseModel):
    success: bool
    bonus_discount_percent: int = 0
    cost_savings: Decimal | None = None
    counterpart_id: str | None = None
    days_advanced: int = 0
    reward_id: str | None = None
    reason: str | None = None


class CancellationStatus(BaseModel):
    """An actor's standing as seen by the ordering screens"""

    actor_id: str
    cancellations_this_month: int
    rfq_cancellations_this_month: int
    account_status: AccountStatus
    suspension_until: datetime | None = None
    suspension_reason: str | None = None
    can_make_new_orders: bool
