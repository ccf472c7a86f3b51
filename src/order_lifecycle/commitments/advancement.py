"""
Advancement rules - pricing a move of the deadline to an earlier date

Each request is measured against the commitment's current deadline, so a
second advancement is priced on its own displacement, not the running total.
"""

from datetime import datetime, timedelta
from decimal import Decimal

from order_lifecycle.commitments.models import (
    AdvancementCheck,
    BusinessPriority,
    BusinessUrgency,
    CommitmentBase,
)
from order_lifecycle.kernel.policy import ActorClass, LifecyclePolicy

CENTS = Decimal("0.01")


def days_between(later: datetime, earlier: datetime) -> int:
    """Whole days from ``earlier`` to ``later``, floored"""
    return (later - earlier) // timedelta(days=1)


def cost_savings(commitment: CommitmentBase, bonus_percent: int) -> Decimal | None:
    """Business only: target price x bonus x quantity"""
    if commitment.actor_class is not ActorClass.BUSINESS:
        return None
    savings = commitment.target_price * Decimal(bonus_percent) / 100 * commitment.quantity
    return savings.quantize(CENTS)


def evaluate_advancement(
    commitment: CommitmentBase,
    new_date: datetime,
    now: datetime,
    policy: LifecyclePolicy,
) -> AdvancementCheck:
    """
    Validate and price an advancement to ``new_date``

    Declined when the commitment is terminal, when ``new_date`` is not in the
    future, or when the displacement is under the class minimum.
    """
    days = days_between(commitment.deadline, new_date)

    if commitment.is_terminal():
        return AdvancementCheck(
            allowed=False,
            max_bonus_percent=0,
            days_advanced=days,
            reason=f"Commitment is already {commitment.status.value}",
        )

    if new_date <= now:
        return AdvancementCheck(
            allowed=False,
            max_bonus_percent=0,
            days_advanced=days,
            reason="New date must be in the future",
        )

    minimum = policy.min_advance_days(commitment.actor_class)
    if days < minimum:
        return AdvancementCheck(
            allowed=False,
            max_bonus_percent=0,
            days_advanced=days,
            reason=f"Deadline must move at least {minimum} days earlier ({days} requested)",
        )

    bonus = policy.bonus_curve(commitment.actor_class).percent_for(days)
    return AdvancementCheck(
        allowed=True,
        max_bonus_percent=bonus,
        days_advanced=days,
        cost_savings=cost_savings(commitment, bonus),
    )


def counterpart_incentive(
    bonus_percent: int,
    actor_class: ActorClass,
    policy: LifecyclePolicy,
) -> Decimal:
    """Share of the bonus passed to the seller (consumer) or supplier (business)"""
    return (Decimal(bonus_percent) * policy.incentive_share(actor_class)).quantize(CENTS)


def business_priority(
    actor_class: ActorClass,
    days_advanced: int,
    policy: LifecyclePolicy,
) -> BusinessPriority:
    if actor_class is not ActorClass.BUSINESS:
        return BusinessPriority.STANDARD
    if days_advanced > policy.urgent_priority_days:
        return BusinessPriority.URGENT
    return BusinessPriority.PRIORITY


def business_urgency(days_advanced: int, policy: LifecyclePolicy) -> BusinessUrgency:
    if days_advanced > policy.urgent_priority_days:
        return BusinessUrgency.HIGH
    return BusinessUrgency.MEDIUM
