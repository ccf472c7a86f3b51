"""
Closure Domain Models

At a product's deadline the competing offers are ranked and one is selected,
with a short queue of runners-up ready to take over if the winner cannot
fulfill:

    PENDING → AUTO_SELECTED ──complete──→ COMPLETED
                  │  ↑
           failure│  │backup promoted
                  ↓  │
                 FAILED (only once the backup queue is exhausted)

A round whose pool was empty goes straight to MANUAL_REVIEW.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from order_lifecycle.commitments.models import ProductKey


class OfferStatus(str, Enum):
    OPEN = "open"  # Not yet in a processed round
    SELECTED = "selected"
    BACKUP = "backup"
    NOT_SELECTED = "not_selected"
    FAILED = "failed"  # Selected, then could not fulfill
    FULFILLED = "fulfilled"


class SelectionStatus(str, Enum):
    PENDING = "pending"
    AUTO_SELECTED = "auto_selected"
    MANUAL_REVIEW = "manual_review"
    COMPLETED = "completed"
    FAILED = "failed"


SELECTION_CRITERIA_LOWEST_PRICE = "lowest_price"


class Offer(BaseModel):
    """
    A seller's price for a product

    Price and product never change after registration; only status moves.
    """

    offer_id: str
    seller_id: str
    seller_name: str | None = None
    product: ProductKey
    price: Decimal = Field(..., ge=0)
    created_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: OfferStatus = OfferStatus.OPEN
    version: int = 0


class BackupQueue(BaseModel):
    """
    Ordered runners-up, cheapest first

    Immutable: ``pop_front`` returns the promoted offer id and a new, shorter
    queue.
    """

    offer_ids: tuple[str, ...] = ()

    model_config = {"frozen": True}

    def __len__(self) -> int:
        return len(self.offer_ids)

    def __bool__(self) -> bool:
        return bool(self.offer_ids)

    def __contains__(self, offer_id: object) -> bool:
        return offer_id in self.offer_ids

    def peek(self) -> str | None:
        return self.offer_ids[0] if self.offer_ids else None

    def pop_front(self) -> tuple[str, "BackupQueue"]:
        """
        Raises:
            IndexError: If the queue is empty
        """
        if not self.offer_ids:
            raise IndexError("pop from empty backup queue")
        return self.offer_ids[0], BackupQueue(offer_ids=self.offer_ids[1:])


class SupersededOffer(BaseModel):
    """Who lost the selection and why - shown to buyers as a legal notice"""

    offer_id: str
    seller_id: str
    reason: str
    superseded_at: datetime
    replaced_by: str | None = None


class ClosureRound(BaseModel):
    """
    One deadline resolution for one product

    ``selected_offer_id`` is set whenever the status is AUTO_SELECTED or
    COMPLETED, and never appears in ``backup_queue``.
    """

    round_id: str
    product: ProductKey
    deadline: datetime
    total_buyers: int = Field(default=0, ge=0)
    selected_offer_id: str | None = None
    backup_queue: BackupQueue = Field(default_factory=BackupQueue)
    selection_status: SelectionStatus = SelectionStatus.PENDING
    selection_criteria: str = SELECTION_CRITERIA_LOWEST_PRICE
    processed_at: datetime | None = None
    completed_at: datetime | None = None
    superseded: list[SupersededOffer] = Field(default_factory=list)
    legal_notice_shown: bool = False
    version: int = 0

    @property
    def backup_offer_ids(self) -> list[str]:
        return list(self.backup_queue.offer_ids)


class FailoverResult(BaseModel):
    """Outcome of handling a selected seller's failure to fulfill"""

    success: bool
    next_best_offer: Offer | None = None
    round_id: str | None = None
    remaining_backups: int = 0
