"""
Lifecycle Policy - Tunable parameters for cancellation, advancement and closure

The margins, limits and bonus curves below were hand-tuned in the marketplace
and have no common derivation. Each one is an independent field; none is
computed from another.
"""

import json
from decimal import Decimal
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class ActorClass(str, Enum):
    """Who owns a commitment - each class has its own margins and curves"""

    CONSUMER = "consumer"
    BUSINESS = "business"


class BonusCurve(BaseModel):
    """Step function: ``step_percent`` for every full ``step_days``, capped"""

    step_days: int = Field(..., ge=1)
    step_percent: int = Field(..., ge=0)
    cap_percent: int = Field(..., ge=0)

    model_config = {"frozen": True}

    def percent_for(self, days_advanced: int) -> int:
        if days_advanced <= 0:
            return 0
        return min((days_advanced // self.step_days) * self.step_percent, self.cap_percent)


class LifecyclePolicy(BaseModel):
    """
    Order lifecycle parameters

    Defaults reproduce the marketplace's production values. Unknown keys are
    rejected so a typo in a policy file fails loudly instead of silently
    keeping a default.
    """

    policy_version: str = Field(
        default="1.0",
        description="Policy version for tracking changes over time",
    )

    # Cancellation windows
    consumer_cancellation_margin_hours: int = Field(
        default=24,
        ge=0,
        description="Hours before deadline inside which a consumer may not cancel",
    )

    business_cancellation_margin_hours: int = Field(
        default=48,
        ge=0,
        description="Hours before deadline inside which a business may not cancel",
    )

    compensation_window_hours: int = Field(
        default=72,
        ge=0,
        description="Business cancellations closer than this owe supplier compensation",
    )

    compensation_rate: Decimal = Field(
        default=Decimal("0.10"),
        ge=0,
        le=1,
        description="Share of target price owed as compensation inside the window",
    )

    # Monthly limits and suspension
    consumer_monthly_cancellation_limit: int = Field(default=3, ge=0)
    business_monthly_cancellation_limit: int = Field(default=2, ge=0)
    consumer_suspension_days: int = Field(default=30, ge=1)
    business_suspension_days: int = Field(default=60, ge=1)

    # Advancement
    consumer_min_advance_days: int = Field(default=30, ge=1)
    business_min_advance_days: int = Field(default=15, ge=1)

    consumer_bonus_step_days: int = Field(default=30, ge=1)
    consumer_bonus_step_percent: int = Field(default=1, ge=0)
    consumer_bonus_cap_percent: int = Field(default=15, ge=0)

    business_bonus_step_days: int = Field(default=15, ge=1)
    business_bonus_step_percent: int = Field(default=2, ge=0)
    business_bonus_cap_percent: int = Field(default=20, ge=0)

    seller_incentive_share: Decimal = Field(
        default=Decimal("0.5"),
        ge=0,
        le=1,
        description="Share of the buyer's bonus granted to the matching seller",
    )

    supplier_incentive_share: Decimal = Field(
        default=Decimal("0.3"),
        ge=0,
        le=1,
        description="Share of the business's bonus granted to the responding supplier",
    )

    urgent_priority_days: int = Field(
        default=60,
        ge=0,
        description="Advancements strictly beyond this many days are tagged urgent",
    )

    # Closure
    backup_offer_limit: int = Field(
        default=3,
        ge=0,
        description="Runners-up kept in a closure round's backup queue",
    )

    model_config = {
        "frozen": False,
        "extra": "forbid",
        "json_schema_extra": {
            "description": "Cancellation, advancement and closure parameters"
        },
    }

    @classmethod
    def load(cls, path: str | Path) -> "LifecyclePolicy":
        """
        Load a policy from a JSON file

        Keys missing from the file keep their defaults.

        Raises:
            pydantic.ValidationError: On unknown keys or out-of-range values
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.model_validate(data)

    def cancellation_margin_hours(self, actor_class: ActorClass) -> int:
        if actor_class is ActorClass.BUSINESS:
            return self.business_cancellation_margin_hours
        return self.consumer_cancellation_margin_hours

    def monthly_cancellation_limit(self, actor_class: ActorClass) -> int:
        if actor_class is ActorClass.BUSINESS:
            return self.business_monthly_cancellation_limit
        return self.consumer_monthly_cancellation_limit

    def suspension_days(self, actor_class: ActorClass) -> int:
        if actor_class is ActorClass.BUSINESS:
            return self.business_suspension_days
        return self.consumer_suspension_days

    def min_advance_days(self, actor_class: ActorClass) -> int:
        if actor_class is ActorClass.BUSINESS:
            return self.business_min_advance_days
        return self.consumer_min_advance_days

    def bonus_curve(self, actor_class: ActorClass) -> BonusCurve:
        if actor_class is ActorClass.BUSINESS:
            return BonusCurve(
                step_days=self.business_bonus_step_days,
                step_percent=self.business_bonus_step_percent,
                cap_percent=self.business_bonus_cap_percent,
            )
        return BonusCurve(
            step_days=self.consumer_bonus_step_days,
            step_percent=self.consumer_bonus_step_percent,
            cap_percent=self.consumer_bonus_cap_percent,
        )

    def incentive_share(self, actor_class: ActorClass) -> Decimal:
        """Sellers serve consumers, suppliers serve businesses"""
        if actor_class is ActorClass.BUSINESS:
            return self.supplier_incentive_share
        return self.seller_incentive_share


# Default global policy instance
default_lifecycle_policy = LifecyclePolicy()
