"""
Cancellation rules - pure functions over commitments and actor records

Nothing here touches the store. Handlers call these to decide what events
to emit; the façade calls evaluate_cancellation directly for CanCancel.
"""

import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import NamedTuple

from order_lifecycle.commitments.models import (
    ActorCancellationRecord,
    BusinessImpact,
    CancellationCheck,
    CommitmentBase,
)
from order_lifecycle.kernel.policy import ActorClass, LifecyclePolicy
from order_lifecycle.kernel.time import months_between

CENTS = Decimal("0.01")


def hours_to_deadline(deadline: datetime, now: datetime) -> int:
    """Whole hours left before the deadline, floored (negative once passed)"""
    return math.floor((deadline - now).total_seconds() / 3600)


def evaluate_cancellation(
    commitment: CommitmentBase,
    now: datetime,
    policy: LifecyclePolicy,
) -> CancellationCheck:
    """
    Decide whether a commitment may be cancelled at ``now``

    Declines terminal commitments and any cancellation at or inside the
    actor class's margin (24h consumer / 48h business by default).
    """
    hours = hours_to_deadline(commitment.deadline, now)

    if commitment.is_terminal():
        return CancellationCheck(
            allowed=False,
            hours_to_deadline=hours,
            reason=f"Commitment is already {commitment.status.value}",
        )

    margin = policy.cancellation_margin_hours(commitment.actor_class)
    if hours <= margin:
        return CancellationCheck(
            allowed=False,
            hours_to_deadline=hours,
            reason=(
                f"Cancellation is not allowed within {margin} hours of the deadline "
                f"({hours} hours left)"
            ),
        )

    return CancellationCheck(allowed=True, hours_to_deadline=hours)


def compute_compensation(
    commitment: CommitmentBase,
    hours_before_deadline: int,
    policy: LifecyclePolicy,
) -> Decimal | None:
    """
    Supplier-protection charge for a late business withdrawal

    None for consumers; zero for businesses outside the compensation window.
    """
    if commitment.actor_class is not ActorClass.BUSINESS:
        return None
    if hours_before_deadline < policy.compensation_window_hours:
        return (commitment.target_price * policy.compensation_rate).quantize(CENTS)
    return Decimal("0.00")


def business_impact(
    actor_class: ActorClass,
    hours_before_deadline: int,
    policy: LifecyclePolicy,
) -> BusinessImpact | None:
    if actor_class is not ActorClass.BUSINESS:
        return None
    if hours_before_deadline < policy.compensation_window_hours:
        return BusinessImpact.HIGH
    return BusinessImpact.MEDIUM


class CounterOutcome(NamedTuple):
    """Actor record state after counting one cancellation"""

    monthly_cancellations: int
    monthly_rfq_cancellations: int
    last_reset_at: datetime
    rolled_over: bool
    count: int
    limit: int
    penalty_applied: bool
    suspension_until: datetime | None
    suspension_reason: str | None


def cancellation_limit(
    record: ActorCancellationRecord,
    actor_class: ActorClass,
    policy: LifecyclePolicy,
) -> int:
    if actor_class is ActorClass.BUSINESS and record.business_cancellation_limit is not None:
        return record.business_cancellation_limit
    return policy.monthly_cancellation_limit(actor_class)


def count_cancellation(
    record: ActorCancellationRecord,
    actor_class: ActorClass,
    now: datetime,
    policy: LifecyclePolicy,
) -> CounterOutcome:
    """
    Apply monthly rollover, then count one cancellation

    On the first cancellation in a new calendar month both counters restart:
    the class being cancelled reads 1, the other 0. A post-increment count
    strictly above the limit suspends the account from ``now``.
    """
    business = actor_class is ActorClass.BUSINESS
    last_reset = record.last_reset_at or now

    if months_between(last_reset, now) >= 1:
        consumer_count = 0 if business else 1
        business_count = 1 if business else 0
        last_reset = now
        rolled_over = True
    else:
        consumer_count = record.monthly_cancellations + (0 if business else 1)
        business_count = record.monthly_rfq_cancellations + (1 if business else 0)
        rolled_over = False

    count = business_count if business else consumer_count
    limit = cancellation_limit(record, actor_class, policy)
    penalty_applied = count > limit

    suspension_until = None
    suspension_reason = None
    if penalty_applied:
        suspension_until = now + timedelta(days=policy.suspension_days(actor_class))
        label = "B2B" if business else "B2C"
        suspension_reason = (
            f"Exceeded {label} cancellation limit ({count}/{limit} this month)"
        )

    return CounterOutcome(
        monthly_cancellations=consumer_count,
        monthly_rfq_cancellations=business_count,
        last_reset_at=last_reset,
        rolled_over=rolled_over,
        count=count,
        limit=limit,
        penalty_applied=penalty_applied,
        suspension_until=suspension_until,
        suspension_reason=suspension_reason,
    )
