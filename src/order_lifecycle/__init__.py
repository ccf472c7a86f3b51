"""
Order Lifecycle - Event-sourced order commitment engine

Decides what happens when buyers cancel or pull deadlines forward, and which
seller wins when a product's deadline arrives. Cancellations are bounded by
deadline margins and monthly limits, early deadlines earn bonus discounts,
and every closure keeps an ordered queue of backup offers so a failed seller
can be replaced without re-running selection.
"""

from order_lifecycle.engine import OrderLifecycle

__version__ = "0.1.0"
__all__ = ["OrderLifecycle", "__version__"]
