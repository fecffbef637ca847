"""
Value types shared by the billing services, adapter and webhook handlers.

All types are immutable dataclasses. Gateway payloads are plain dicts (either
parsed webhook JSON or StripeObject.to_dict()), so the from_stripe()
constructors only use mapping access and tolerate missing keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from typing import Any, Mapping

from core.exceptions import ValidationError


def from_unix(value: Any) -> datetime | None:
    """Convert a gateway unix timestamp to an aware UTC datetime."""
    if value is None or value == "":
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def object_id(value: Any) -> str | None:
    """
    Return the id of a gateway reference.

    References arrive either as a bare id ("sub_123") or, when expanded,
    as the full object ({"id": "sub_123", ...}).
    """
    if isinstance(value, Mapping):
        return value.get("id")
    return value or None


# =============================================================================
# Inbound Events
# =============================================================================


@dataclass(frozen=True)
class InboundEvent:
    """
    A verified gateway notification.

    Attributes:
        event_id: Gateway event id (evt_xxx), the idempotency key
        type: Event type, e.g. "customer.subscription.updated"
        created_at: When the gateway generated the event; orders snapshots
        data_object: The snapshot the event carries (payload.data.object)
        payload: The full parsed envelope, stored in the webhook ledger
    """

    event_id: str
    type: str
    created_at: datetime
    data_object: dict[str, Any]
    payload: dict[str, Any] = field(repr=False)

    @classmethod
    def from_payload(cls, payload: Any) -> InboundEvent:
        """
        Build an event from a parsed envelope.

        Raises:
            ValidationError: Envelope is not an object or lacks id/type/created
        """
        if not isinstance(payload, dict):
            raise ValidationError(
                "Event payload must be a JSON object",
                error_code="INVALID_WEBHOOK_PAYLOAD",
            )

        event_id = payload.get("id")
        event_type = payload.get("type")
        created_at = from_unix(payload.get("created", payload.get("created_at")))
        if not event_id or not event_type or created_at is None:
            raise ValidationError(
                "Event payload is missing id, type or created",
                error_code="INVALID_WEBHOOK_PAYLOAD",
            )

        data = payload.get("data") or {}
        data_object = data.get("object") if isinstance(data, dict) else None

        return cls(
            event_id=event_id,
            type=event_type,
            created_at=created_at,
            data_object=data_object if isinstance(data_object, dict) else {},
            payload=payload,
        )


# =============================================================================
# Gateway Snapshots
# =============================================================================


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """
    Point-in-time view of a gateway subscription.

    Attributes:
        subscription_id: Gateway subscription id (sub_xxx)
        customer_id: Gateway customer id (cus_xxx)
        status: Gateway lifecycle string (active, past_due, canceled, ...)
        interval: Billing interval of the first item ("month", "year")
        current_period_start: Start of the paid period
        current_period_end: End of the paid period
        cancel_at_period_end: Whether the subscription ends at period end
        metadata: Subscription metadata (carries user_id, maybe plan)
    """

    subscription_id: str | None
    customer_id: str | None
    status: str
    interval: str | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, data: Mapping[str, Any]) -> SubscriptionSnapshot:
        items = data.get("items")
        item_list = (items.get("data") or []) if isinstance(items, Mapping) else []
        first_item = item_list[0] if item_list else {}

        plan = first_item.get("plan") or {}
        price = first_item.get("price") or {}
        interval = plan.get("interval") or (price.get("recurring") or {}).get(
            "interval"
        )

        # Newer API versions report billing periods per subscription item
        period_start = data.get("current_period_start") or first_item.get(
            "current_period_start"
        )
        period_end = data.get("current_period_end") or first_item.get(
            "current_period_end"
        )

        return cls(
            subscription_id=data.get("id"),
            customer_id=object_id(data.get("customer")),
            status=data.get("status") or "",
            interval=interval,
            current_period_start=from_unix(period_start),
            current_period_end=from_unix(period_end),
            cancel_at_period_end=bool(data.get("cancel_at_period_end")),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class CheckoutSessionSnapshot:
    """
    Point-in-time view of a gateway checkout session.

    Attributes:
        session_id: Gateway session id (cs_xxx)
        url: Hosted checkout page URL (only while the session is open)
        customer_id: Gateway customer the session was created for
        customer_email: Email the buyer entered or the customer's email
        payment_status: "paid", "unpaid" or "no_payment_required"
        subscription_id: Created subscription id, once completed
        subscription: Expanded subscription, when requested
        metadata: Session metadata (user_id, maybe plan)
        created_at: Session creation time
    """

    session_id: str
    url: str | None = None
    customer_id: str | None = None
    customer_email: str | None = None
    payment_status: str | None = None
    subscription_id: str | None = None
    subscription: SubscriptionSnapshot | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    created_at: datetime | None = None

    @classmethod
    def from_stripe(cls, data: Mapping[str, Any]) -> CheckoutSessionSnapshot:
        subscription = data.get("subscription")
        customer_details = data.get("customer_details") or {}

        return cls(
            session_id=data.get("id"),
            url=data.get("url"),
            customer_id=object_id(data.get("customer")),
            customer_email=data.get("customer_email") or customer_details.get("email"),
            payment_status=data.get("payment_status"),
            subscription_id=object_id(subscription),
            subscription=(
                SubscriptionSnapshot.from_stripe(subscription)
                if isinstance(subscription, Mapping)
                else None
            ),
            metadata=dict(data.get("metadata") or {}),
            created_at=from_unix(data.get("created")),
        )


# =============================================================================
# Checkout
# =============================================================================


@dataclass(frozen=True)
class DiscountTerms:
    """
    Discount granted by a successfully redeemed coupon.

    Attributes:
        code: Normalized (upper-case) coupon code, also the gateway coupon id
        discount_type: "percentage" or "amount"
        discount_value: Percent off, or amount off in major currency units
    """

    code: str
    discount_type: str
    discount_value: Decimal


@dataclass(frozen=True)
class CheckoutResult:
    """Hosted checkout session the client should be redirected to."""

    session_id: str
    url: str
