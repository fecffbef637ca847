"""
Plan classification for gateway subscriptions.

The plan is decided once, here, from the subscription's billing interval.
An explicit "plan" metadata value set at checkout overrides the interval.
"""

from __future__ import annotations

from django.conf import settings

from billing.state_machines import PlanType

_PAID_PLANS = {PlanType.MONTHLY.value, PlanType.YEARLY.value}


def classify_plan(interval: str | None, metadata_plan: str | None = None) -> str:
    """
    Return the plan type for a paid subscription.

    Args:
        interval: Billing interval of the subscription's price ("month", "year")
        metadata_plan: Optional "monthly"/"yearly" override from metadata

    Examples:
        classify_plan("year")              -> "yearly"
        classify_plan("month")             -> "monthly"
        classify_plan(None)                -> "monthly"
        classify_plan("month", "Yearly")   -> "yearly"
        classify_plan("year", "weekly")    -> "yearly"
    """
    if metadata_plan:
        normalized = str(metadata_plan).strip().lower()
        if normalized in _PAID_PLANS:
            return normalized

    if (interval or "").strip().lower() == "year":
        return PlanType.YEARLY.value
    return PlanType.MONTHLY.value


def plan_for_price(price_id: str | None) -> str | None:
    """Look up the configured plan for a price id, if any."""
    if not price_id:
        return None
    plan = settings.STRIPE_PRICE_PLAN_MAP.get(price_id)
    if plan and plan.lower() in _PAID_PLANS:
        return plan.lower()
    return None
