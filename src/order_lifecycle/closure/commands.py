"""
Closure Commands

Offer registration, deadline processing and the failure path that promotes
the next backup.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from order_lifecycle.commitments.models import ProductKey


class RegisterOffer(BaseModel):
    seller_id: str
    product: ProductKey
    price: Decimal = Field(..., ge=0)
    seller_name: str | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Reliability scores, delivery terms, etc."
    )


class ProcessClosure(BaseModel):
    """
    Resolve a product's deadline against a pool of offers

    The round is identified by product and deadline; processing the same
    pair twice returns the first result.
    """

    product: ProductKey
    deadline: datetime | date
    offer_ids: list[str] = Field(
        default_factory=list, description="Pool snapshot (registered offers)"
    )


class HandleFulfillmentFailure(BaseModel):
    selected_offer_id: str
    reason: str


class CompleteRound(BaseModel):
    round_id: str


class AcknowledgeLegalNotice(BaseModel):
    """Buyers have been shown that their seller changed"""

    round_id: str
