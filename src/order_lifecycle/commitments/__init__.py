"""
Commitments - purchase intentions, RFQs and the rules that govern them

Cancellation margins, monthly limits and suspension; advancement bonus
curves and counterpart incentives.
"""

from order_lifecycle.commitments.models import (
    RFQ,
    AccountStatus,
    ActorCancellationRecord,
    AdvancementCheck,
    AdvancementResult,
    AdvancementReward,
    BusinessImpact,
    BusinessPriority,
    BusinessUrgency,
    CancellationCheck,
    CancellationRecord,
    CancellationResult,
    CancellationStatus,
    Commitment,
    CommitmentStatus,
    ProductKey,
    PurchaseIntention,
    RewardStatus,
    RfqResponse,
)

__all__ = [
    "Commitment",
    "PurchaseIntention",
    "RFQ",
    "RfqResponse",
    "ProductKey",
    "CommitmentStatus",
    "AccountStatus",
    "RewardStatus",
    "BusinessImpact",
    "BusinessPriority",
    "BusinessUrgency",
    "ActorCancellationRecord",
    "CancellationRecord",
    "AdvancementReward",
    "CancellationCheck",
    "CancellationResult",
    "CancellationStatus",
    "AdvancementCheck",
    "AdvancementResult",
]
