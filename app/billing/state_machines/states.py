"""
State enums for billing models.

These are Django TextChoices for database storage and admin integration.

Subscription lifecycle (derived, never stored):

    (no record) ──► FREE
    FREE ──checkout.session.completed──► ACTIVE
    ACTIVE ──customer.subscription.updated(past_due)──► PAST_DUE
    PAST_DUE ──customer.subscription.updated(active)──► ACTIVE
    ACTIVE/PAST_DUE ──customer.subscription.deleted──► CANCELED
    CANCELED ──checkout.session.completed──► ACTIVE

The stored status is the gateway's lifecycle string copied verbatim, so the
derived state is computed from (plan_type, status) on read.
"""

from __future__ import annotations

from django.db import models


class PlanType(models.TextChoices):
    """Billing plan of a subscription record."""

    FREE = "free", "Free"
    MONTHLY = "monthly", "Monthly"
    YEARLY = "yearly", "Yearly"


class SubscriptionState(models.TextChoices):
    """
    Derived lifecycle state of a user's membership.

    Computed by derive_state(); not a database column.
    """

    FREE = "free", "Free"
    ACTIVE = "active", "Active"
    PAST_DUE = "past_due", "Past Due"
    CANCELED = "canceled", "Canceled"


class DiscountType(models.TextChoices):
    """How a coupon's discount_value is interpreted."""

    PERCENTAGE = "percentage", "Percentage"
    AMOUNT = "amount", "Fixed Amount"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


# Gateway subscription statuses grouped by the derived state they map to
ACTIVE_STATUSES = frozenset({"active", "trialing"})
PAST_DUE_STATUSES = frozenset({"past_due", "unpaid", "incomplete", "paused"})
CANCELED_STATUSES = frozenset({"canceled", "incomplete_expired"})

# Status reported for users that never subscribed
IMPLICIT_FREE_STATUS = "active"


def derive_state(plan_type: str | None, status: str | None) -> SubscriptionState:
    """
    Map a stored (plan_type, status) pair to the membership state.

    Examples:
        derive_state(None, None)                  -> FREE
        derive_state("free", "active")            -> FREE
        derive_state("free", "canceled")          -> CANCELED
        derive_state("monthly", "trialing")       -> ACTIVE
        derive_state("yearly", "past_due")        -> PAST_DUE
    """
    if status in CANCELED_STATUSES:
        return SubscriptionState.CANCELED
    if not plan_type or plan_type == PlanType.FREE:
        return SubscriptionState.FREE
    if status in ACTIVE_STATUSES:
        return SubscriptionState.ACTIVE
    if status in PAST_DUE_STATUSES:
        return SubscriptionState.PAST_DUE
    return SubscriptionState.FREE
