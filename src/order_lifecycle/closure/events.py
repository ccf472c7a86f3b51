"""
Closure Events

Offer registration lives on the offer's own stream. Everything that happens
at and after a deadline lives on the closure round's stream; offer statuses
are derived from those round events by the OfferBook projection.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from order_lifecycle.closure.models import SelectionStatus
from order_lifecycle.commitments.models import ProductKey


class OfferRegistered(BaseModel):
    offer_id: str
    seller_id: str
    seller_name: str | None = None
    product: ProductKey
    price: Decimal
    metadata: dict[str, Any] = Field(default_factory=dict)
    registered_at: datetime


class ClosureRoundProcessed(BaseModel):
    round_id: str
    product: ProductKey
    deadline: datetime
    total_buyers: int
    pool_size: int
    selected_offer_id: str | None = None
    backup_offer_ids: list[str] = Field(default_factory=list)
    not_selected_offer_ids: list[str] = Field(default_factory=list)
    selection_status: SelectionStatus
    selection_criteria: str
    processed_at: datetime


class FulfillmentFailoverTriggered(BaseModel):
    """Selected seller could not fulfill; the front backup took over"""

    round_id: str
    failed_offer_id: str
    failed_seller_id: str
    promoted_offer_id: str
    remaining_backup_ids: list[str]
    reason: str
    failed_at: datetime


class FailoverExhausted(BaseModel):
    """Selected seller could not fulfill and no backup was left"""

    round_id: str
    failed_offer_id: str
    failed_seller_id: str
    reason: str
    failed_at: datetime


class ClosureRoundCompleted(BaseModel):
    round_id: str
    selected_offer_id: str
    completed_at: datetime


class LegalNoticeAcknowledged(BaseModel):
    round_id: str
    acknowledged_at: datetime
