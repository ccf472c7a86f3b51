"""
Buyer-pool size oracles

A closure round stamps how many buyers were waiting on the product when it
was processed. Where that number comes from is pluggable.
"""

from collections.abc import Callable
from typing import Protocol

from order_lifecycle.commitments.models import ProductKey
from order_lifecycle.commitments.projections import CommitmentRegistry


class BuyerPoolOracle(Protocol):
    def pool_size(self, product: ProductKey) -> int:
        """Number of buyers waiting on ``product``"""
        ...


class CommitmentPoolOracle:
    """Counts open purchase intentions for the product"""

    def __init__(self, registry_source: Callable[[], CommitmentRegistry]) -> None:
        """
        Args:
            registry_source: Callable returning the current CommitmentRegistry;
                the façade swaps registries when it rebuilds projections
        """
        self._registry_source = registry_source

    def pool_size(self, product: ProductKey) -> int:
        return len(self._registry_source().list_open_intentions(product.key))


class FixedBuyerPool:
    """Always reports the same size"""

    def __init__(self, size: int) -> None:
        if size < 0:
            raise ValueError("Buyer pool size cannot be negative")
        self.size = size

    def pool_size(self, product: ProductKey) -> int:
        return self.size
