"""
Factory Boy factories and Stripe payload builders for billing tests.

Usage:
    from billing.tests.factories import (
        CouponRecordFactory,
        CustomerLinkFactory,
        SubscriptionRecordFactory,
        WebhookEventFactory,
        subscription_event,
    )

    coupon = CouponRecordFactory(code="SAVE20", usage_limit=1)
    payload = subscription_event("customer.subscription.deleted", customer="cus_1")
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from datetime import timedelta
from decimal import Decimal
from typing import Any

import factory
from django.utils import timezone

from authentication.tests.factories import UserFactory
from billing.models import CouponRecord, CustomerLink, SubscriptionRecord, WebhookEvent
from billing.state_machines import DiscountType, PlanType, WebhookEventStatus

# Mid-2025, used as the default event "created" timestamp
BASE_TIMESTAMP = 1_750_000_000


# =============================================================================
# Model Factories
# =============================================================================


class CouponRecordFactory(factory.django.DjangoModelFactory):
    """Active, unlimited 20% coupon by default."""

    class Meta:
        model = CouponRecord

    code = factory.Sequence(lambda n: f"PROMO{n}")
    discount_type = DiscountType.PERCENTAGE
    discount_value = Decimal("20.00")
    usage_limit = None
    used_count = 0
    expires_at = None
    is_active = True


class CustomerLinkFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = CustomerLink

    user = factory.SubFactory(UserFactory)
    external_customer_id = factory.Sequence(lambda n: f"cus_test{n:06d}")
    email = factory.LazyAttribute(lambda o: o.user.email)


class SubscriptionRecordFactory(factory.django.DjangoModelFactory):
    """Active monthly subscription by default."""

    class Meta:
        model = SubscriptionRecord

    user = factory.SubFactory(UserFactory)
    external_customer_id = factory.Sequence(lambda n: f"cus_rec{n:06d}")
    external_subscription_id = factory.Sequence(lambda n: f"sub_test{n:06d}")
    plan_type = PlanType.MONTHLY
    status = "active"
    current_period_start = factory.LazyFunction(timezone.now)
    current_period_end = factory.LazyFunction(
        lambda: timezone.now() + timedelta(days=30)
    )
    cancel_at_period_end = False
    last_event_at = None


class WebhookEventFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = WebhookEvent

    stripe_event_id = factory.Sequence(lambda n: f"evt_test{n:06d}")
    event_type = "customer.subscription.updated"
    payload = factory.LazyAttribute(
        lambda o: {"id": o.stripe_event_id, "type": o.event_type, "data": {"object": {}}}
    )
    status = WebhookEventStatus.PENDING
    retry_count = 0


# =============================================================================
# Stripe Payload Builders
# =============================================================================


def event_envelope(
    event_type: str,
    data_object: dict[str, Any],
    event_id: str = "evt_test_1",
    created: int = BASE_TIMESTAMP,
) -> dict[str, Any]:
    """Wrap a data object in a Stripe event envelope."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": created,
        "livemode": False,
        "data": {"object": data_object},
    }


def subscription_object(
    subscription_id: str = "sub_test_1",
    customer: str = "cus_test_1",
    status: str = "active",
    interval: str = "month",
    period_start: int = BASE_TIMESTAMP,
    period_end: int = BASE_TIMESTAMP + 30 * 86400,
    cancel_at_period_end: bool = False,
    metadata: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Build a Stripe Subscription as it appears in events and API responses."""
    return {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "current_period_start": period_start,
        "current_period_end": period_end,
        "cancel_at_period_end": cancel_at_period_end,
        "metadata": metadata or {},
        "items": {
            "object": "list",
            "data": [
                {
                    "id": "si_test_1",
                    "plan": {"id": "price_test", "interval": interval},
                    "price": {"id": "price_test", "recurring": {"interval": interval}},
                }
            ],
        },
    }


def subscription_event(
    event_type: str,
    event_id: str = "evt_sub_1",
    created: int = BASE_TIMESTAMP,
    **subscription_kwargs: Any,
) -> dict[str, Any]:
    return event_envelope(
        event_type,
        subscription_object(**subscription_kwargs),
        event_id=event_id,
        created=created,
    )


def checkout_session_object(
    session_id: str = "cs_test_1",
    customer: str | None = "cus_test_1",
    customer_email: str | None = None,
    subscription: Any = "sub_test_1",
    payment_status: str = "paid",
    metadata: dict[str, str] | None = None,
    created: int = BASE_TIMESTAMP,
) -> dict[str, Any]:
    """Build a completed subscription-mode Checkout Session."""
    return {
        "id": session_id,
        "object": "checkout.session",
        "mode": "subscription",
        "customer": customer,
        "customer_email": customer_email,
        "customer_details": {"email": customer_email},
        "subscription": subscription,
        "payment_status": payment_status,
        "status": "complete",
        "url": None,
        "metadata": metadata or {},
        "created": created,
    }


def checkout_completed_event(
    event_id: str = "evt_checkout_1",
    created: int = BASE_TIMESTAMP,
    **session_kwargs: Any,
) -> dict[str, Any]:
    return event_envelope(
        "checkout.session.completed",
        checkout_session_object(**session_kwargs),
        event_id=event_id,
        created=created,
    )


# =============================================================================
# Signing
# =============================================================================


def sign_payload(payload: str | bytes, secret: str, timestamp: int | None = None) -> str:
    """
    Build a Stripe-Signature header for a payload.

    Same scheme as Stripe: v1 = HMAC-SHA256(secret, "{t}.{payload}").
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def encode(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload).encode("utf-8")
