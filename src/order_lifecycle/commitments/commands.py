"""
Commitment Commands

Commands express what a buyer, a business or an operator wants done to a
commitment, an actor's standing or an advancement reward. The acting actor
is passed alongside the command, never stored in it.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from order_lifecycle.commitments.models import ProductKey


class OpenIntention(BaseModel):
    """Consumer pledges to buy a product by ``deadline``"""

    product: ProductKey
    deadline: datetime | date
    target_price: Decimal = Field(..., ge=0)
    quantity: int = Field(default=1, ge=1)


class OpenRFQ(BaseModel):
    """Business asks suppliers to quote by ``deadline``"""

    product: ProductKey
    deadline: datetime | date
    target_price: Decimal = Field(..., ge=0)
    quantity: int = Field(default=1, ge=1)


class RecordRfqResponse(BaseModel):
    commitment_id: str
    supplier_id: str
    quoted_price: Decimal | None = Field(default=None, ge=0)


class CancelCommitment(BaseModel):
    commitment_id: str
    reason: str = Field(default="", description="Free text shown to the counterpart")


class AdvanceCommitment(BaseModel):
    """Move the deadline earlier in exchange for a bonus discount"""

    commitment_id: str
    new_date: datetime | date


class CompleteCommitment(BaseModel):
    commitment_id: str


class BanActor(BaseModel):
    actor_id: str
    reason: str


class SetBusinessCancellationLimit(BaseModel):
    """Override the monthly business cancellation limit for one actor"""

    actor_id: str
    limit: int = Field(..., ge=0)


class ApproveReward(BaseModel):
    reward_id: str


class RedeemReward(BaseModel):
    reward_id: str
