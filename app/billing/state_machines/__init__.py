"""
State enums and helpers for billing models.
"""

from billing.state_machines.states import (
    ACTIVE_STATUSES,
    CANCELED_STATUSES,
    IMPLICIT_FREE_STATUS,
    PAST_DUE_STATUSES,
    DiscountType,
    PlanType,
    SubscriptionState,
    WebhookEventStatus,
    derive_state,
)

__all__ = [
    "ACTIVE_STATUSES",
    "CANCELED_STATUSES",
    "IMPLICIT_FREE_STATUS",
    "PAST_DUE_STATUSES",
    "DiscountType",
    "PlanType",
    "SubscriptionState",
    "WebhookEventStatus",
    "derive_state",
]
