"""
Billing domain models.

- CustomerLink: User <-> Stripe customer mapping
- CouponRecord: Discount codes with expiry and usage quota
- SubscriptionRecord: Reconciled membership state, one per user
- WebhookEvent: Idempotency ledger for Stripe webhook deliveries
"""

from billing.models.coupon import CouponRecord
from billing.models.customer_link import CustomerLink
from billing.models.subscription_record import SubscriptionRecord
from billing.models.webhook_event import WebhookEvent

__all__ = [
    "CouponRecord",
    "CustomerLink",
    "SubscriptionRecord",
    "WebhookEvent",
]
