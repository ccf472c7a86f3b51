"""
Closure - deadline-time offer selection with a bounded failover chain
"""

from order_lifecycle.closure.models import (
    BackupQueue,
    ClosureRound,
    FailoverResult,
    Offer,
    OfferStatus,
    SelectionStatus,
    SupersededOffer,
)
from order_lifecycle.closure.pool import BuyerPoolOracle, CommitmentPoolOracle, FixedBuyerPool
from order_lifecycle.closure.selection import rank_offers, select_offers

__all__ = [
    "Offer",
    "OfferStatus",
    "ClosureRound",
    "SelectionStatus",
    "BackupQueue",
    "SupersededOffer",
    "FailoverResult",
    "BuyerPoolOracle",
    "CommitmentPoolOracle",
    "FixedBuyerPool",
    "rank_offers",
    "select_offers",
]
