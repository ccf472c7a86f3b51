"""
Test Helper Functions - Builders for commitments, offers and records

Builders return plain domain models so rule functions can be tested without
an engine or a database.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from order_lifecycle.closure.models import Offer
from order_lifecycle.commitments.models import (
    RFQ,
    ActorCancellationRecord,
    CommitmentStatus,
    ProductKey,
    PurchaseIntention,
)
from order_lifecycle.kernel.time import TestTimeProvider

NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
PHONE = ProductKey(category="phones", product_name="iPhone 15 Pro")
LAPTOP = ProductKey(category="laptops", product_name="ThinkPad X1")


def build_intention(
    deadline: datetime,
    target_price: Decimal | str = "999",
    quantity: int = 1,
    status: CommitmentStatus = CommitmentStatus.ACTIVE,
    actor_id: str = "buyer-1",
    commitment_id: str = "intention-1",
) -> PurchaseIntention:
    """
    Builder for a consumer purchase intention

    The cancellation deadline is filled in with the default 24h margin.
    """
    return PurchaseIntention(
        commitment_id=commitment_id,
        actor_id=actor_id,
        product=PHONE,
        quantity=quantity,
        target_price=Decimal(target_price),
        deadline=deadline,
        status=status,
        cancellation_deadline=deadline - timedelta(hours=24),
        created_at=NOW,
    )


def build_rfq(
    deadline: datetime,
    target_price: Decimal | str = "2000",
    quantity: int = 1,
    status: CommitmentStatus = CommitmentStatus.ACTIVE,
    actor_id: str = "business-1",
    commitment_id: str = "rfq-1",
) -> RFQ:
    """Builder for a business RFQ with the default 48h margin"""
    return RFQ(
        commitment_id=commitment_id,
        actor_id=actor_id,
        product=LAPTOP,
        quantity=quantity,
        target_price=Decimal(target_price),
        deadline=deadline,
        status=status,
        cancellation_deadline=deadline - timedelta(hours=48),
        created_at=NOW,
    )


def build_record(
    actor_id: str = "buyer-1",
    monthly_cancellations: int = 0,
    monthly_rfq_cancellations: int = 0,
    last_reset_at: datetime | None = NOW,
    business_cancellation_limit: int | None = None,
) -> ActorCancellationRecord:
    return ActorCancellationRecord(
        actor_id=actor_id,
        monthly_cancellations=monthly_cancellations,
        monthly_rfq_cancellations=monthly_rfq_cancellations,
        last_reset_at=last_reset_at,
        business_cancellation_limit=business_cancellation_limit,
    )


def build_offer(
    offer_id: str,
    price: Decimal | str,
    created_at: datetime = NOW,
    seller_id: str | None = None,
    product: ProductKey = PHONE,
) -> Offer:
    return Offer(
        offer_id=offer_id,
        seller_id=seller_id or f"seller-{offer_id}",
        product=product,
        price=Decimal(price),
        created_at=created_at,
    )


def register_scenario_offers(engine, test_time: TestTimeProvider) -> dict[str, Offer]:
    """
    Register the five-offer pool A..E, one second apart

    Prices: A 999, B 1049, C 1079, D 1099, E 1129.

    Returns:
        Letter -> registered offer
    """
    offers = {}
    for letter, price in (
        ("A", "999"),
        ("B", "1049"),
        ("C", "1079"),
        ("D", "1099"),
        ("E", "1129"),
    ):
        offers[letter] = engine.register_offer(
            f"seller-{letter}", PHONE, price, seller_name=f"Seller {letter}"
        )
        test_time.advance_seconds(1)
    return offers
