"""
Subscription reconciler: folds gateway snapshots into SubscriptionRecord.

Each verified gateway event is applied as an idempotent upsert of the user's
single SubscriptionRecord. Events arrive with no ordering guarantee, so every
write runs in a transaction with the record row locked and is applied only if
the event is not older than the snapshot already stored (last_event_at).
A subscription fetched live from the gateway during the event is current by
definition and bypasses that check.

Event kinds:
    checkout.session.completed     -> reconcile_checkout_completed
    customer.subscription.updated  -> reconcile_subscription_updated
    customer.subscription.deleted  -> reconcile_subscription_deleted

Outcomes:
    ServiceResult.success(...)         applied, or acknowledged as a no-op
    ServiceResult.failure(INVALID_WEBHOOK_PAYLOAD)
                                       event cannot identify its subject
    UnknownCustomerError (raised)      subject identified but not known here
    StripeError (raised)               gateway lookup failed; retry later

Usage:
    from billing.services import SubscriptionReconciler

    result = SubscriptionReconciler.reconcile_subscription_updated(event)
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from django.contrib.auth import get_user_model

from core.services import BaseService, ServiceResult

from billing.adapters import StripeAdapter
from billing.exceptions import UnknownCustomerError
from billing.models import CustomerLink, SubscriptionRecord
from billing.services.customer_resolver import CustomerResolver
from billing.services.plan_classifier import classify_plan
from billing.state_machines import CANCELED_STATUSES, PlanType
from billing.types import CheckoutSessionSnapshot, InboundEvent, SubscriptionSnapshot

if TYPE_CHECKING:
    from authentication.models import User


CANCELED_STATUS = "canceled"


class SubscriptionReconciler(BaseService):
    """
    Applies gateway subscription snapshots to local records.

    All methods are class methods - no instance state is maintained.
    Safe to run concurrently for the same user: the record row lock
    serialises writers and the last_event_at guard drops older snapshots.
    """

    # =========================================================================
    # Event Handlers
    # =========================================================================

    @classmethod
    def reconcile_checkout_completed(cls, event: InboundEvent) -> ServiceResult[dict]:
        """
        Activate the plan bought through a completed checkout session.

        The user is found by metadata.user_id, falling back to the customer
        email when the metadata is missing (degraded mode). When the session
        carries a subscription, it is fetched from the gateway for its
        interval, status and billing period. That snapshot is current, so it
        is applied even when an older-stamped event for another subscription
        (such as the deletion of the plan it replaced) was stored first.

        Raises:
            UnknownCustomerError: No user matches the id or email
            StripeError: Subscription fetch failed
        """
        logger = cls.get_logger()
        session = CheckoutSessionSnapshot.from_stripe(event.data_object)

        raw_user_id = session.metadata.get("user_id")
        email = session.customer_email
        if not raw_user_id and not email:
            logger.error(
                "checkout.session.completed carries neither user_id nor email",
                extra={"event_id": event.event_id, "session_id": session.session_id},
            )
            return ServiceResult.failure(
                "Checkout session identifies no user",
                error_code="INVALID_WEBHOOK_PAYLOAD",
            )

        user = cls._find_checkout_user(raw_user_id, email, event)
        if user is None:
            raise UnknownCustomerError(
                "No user matches the checkout session",
                details={"session_id": session.session_id},
            )

        snapshot = None
        if session.subscription_id:
            snapshot = StripeAdapter.retrieve_subscription(session.subscription_id)

        metadata_plan = session.metadata.get("plan")
        if snapshot is not None:
            fields = {
                "external_subscription_id": snapshot.subscription_id,
                "plan_type": classify_plan(
                    snapshot.interval,
                    metadata_plan or snapshot.metadata.get("plan"),
                ),
                "status": snapshot.status,
                "current_period_start": snapshot.current_period_start,
                "current_period_end": snapshot.current_period_end,
                "cancel_at_period_end": snapshot.cancel_at_period_end,
            }
        else:
            fields = {
                "external_subscription_id": session.subscription_id,
                "plan_type": classify_plan(None, metadata_plan),
                "status": "active" if session.payment_status == "paid" else "incomplete",
            }

        customer_id = session.customer_id or (snapshot.customer_id if snapshot else None)
        if customer_id:
            CustomerResolver.upsert_link(user, customer_id, email)
            fields["external_customer_id"] = customer_id

        if snapshot is None:
            return cls._write(user, fields, event.created_at, event.event_id)

        # A live read of a finished subscription must not displace a newer one
        expected = (
            snapshot.subscription_id if snapshot.status in CANCELED_STATUSES else None
        )
        return cls._write(
            user,
            fields,
            event.created_at,
            event.event_id,
            live=True,
            expected_subscription_id=expected,
        )

    @classmethod
    def reconcile_subscription_updated(cls, event: InboundEvent) -> ServiceResult[dict]:
        """
        Overwrite the record with the subscription snapshot in the event.

        The user is found only through an exact customer link; there is no
        email fallback for subscription events.

        Raises:
            UnknownCustomerError: Customer id has no link
        """
        snapshot = SubscriptionSnapshot.from_stripe(event.data_object)
        if not snapshot.customer_id:
            return cls._missing_customer(event)

        user = cls._user_for_customer(snapshot.customer_id, event)

        fields = {
            "external_customer_id": snapshot.customer_id,
            "external_subscription_id": snapshot.subscription_id,
            "plan_type": classify_plan(snapshot.interval, snapshot.metadata.get("plan")),
            "status": snapshot.status,
            "current_period_start": snapshot.current_period_start,
            "current_period_end": snapshot.current_period_end,
            "cancel_at_period_end": snapshot.cancel_at_period_end,
        }

        return cls._write(user, fields, event.created_at, event.event_id)

    @classmethod
    def reconcile_subscription_deleted(cls, event: InboundEvent) -> ServiceResult[dict]:
        """
        Reset the user to the free plan with a canceled status.

        A deletion for a subscription other than the one the record tracks
        (the user already re-subscribed) is acknowledged without a write.

        Raises:
            UnknownCustomerError: Customer id has no link; nothing is written
        """
        snapshot = SubscriptionSnapshot.from_stripe(event.data_object)
        if not snapshot.customer_id:
            return cls._missing_customer(event)

        user = cls._user_for_customer(snapshot.customer_id, event)

        fields = {
            "external_customer_id": snapshot.customer_id,
            "external_subscription_id": None,
            "plan_type": PlanType.FREE.value,
            "status": CANCELED_STATUS,
            "current_period_start": None,
            "current_period_end": None,
            "cancel_at_period_end": False,
        }

        return cls._write(
            user,
            fields,
            event.created_at,
            event.event_id,
            expected_subscription_id=snapshot.subscription_id,
        )

    # =========================================================================
    # Checkout Verification
    # =========================================================================

    @classmethod
    def sync_checkout_session(
        cls,
        user: User,
        session: CheckoutSessionSnapshot,
    ) -> ServiceResult[dict]:
        """
        Apply a paid, verified checkout session for the requesting user.

        Used after the success redirect so the member sees the plan without
        waiting for the webhook. The snapshot is stamped with the session's
        creation time, so any subscription event the gateway sent later
        still takes precedence.
        """
        snapshot = session.subscription
        fields: dict[str, Any] = {
            "external_subscription_id": session.subscription_id,
            "plan_type": classify_plan(
                snapshot.interval if snapshot else None,
                session.metadata.get("plan"),
            ),
            "status": snapshot.status if snapshot else "active",
        }
        if snapshot is not None:
            fields.update(
                current_period_start=snapshot.current_period_start,
                current_period_end=snapshot.current_period_end,
                cancel_at_period_end=snapshot.cancel_at_period_end,
            )

        if session.customer_id:
            CustomerResolver.upsert_link(user, session.customer_id, session.customer_email)
            fields["external_customer_id"] = session.customer_id

        return cls._write(user, fields, session.created_at, session.session_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _write(
        cls,
        user: User,
        fields: dict[str, Any],
        observed_at: datetime | None,
        source_id: str,
        *,
        live: bool = False,
        expected_subscription_id: str | None = None,
    ) -> ServiceResult[dict]:
        """
        Upsert the user's record unless a newer snapshot is already stored.

        Snapshots with the same timestamp are applied, so replaying one event
        yields the same record. Live snapshots skip the timestamp comparison
        and never move last_event_at backwards.

        When expected_subscription_id is given, the write only happens while
        the record tracks that subscription (or none). The comparison runs
        under the row lock so a concurrent checkout cannot slip in between.
        """
        logger = cls.get_logger()

        with cls.atomic():
            SubscriptionRecord.objects.get_or_create(
                user=user,
                defaults={"external_customer_id": fields.get("external_customer_id", "")},
            )
            record = SubscriptionRecord.objects.select_for_update().get(user=user)

            tracked = record.external_subscription_id
            if expected_subscription_id and tracked and tracked != expected_subscription_id:
                logger.info(
                    "Ignoring snapshot of superseded subscription",
                    extra={
                        "source_id": source_id,
                        "user_id": user.pk,
                        "subscription_id": expected_subscription_id,
                        "tracked_subscription_id": tracked,
                    },
                )
                return ServiceResult.success(
                    {"applied": False, "reason": "superseded", "user_id": user.pk}
                )

            if (
                not live
                and observed_at is not None
                and record.last_event_at is not None
                and observed_at < record.last_event_at
            ):
                logger.info(
                    "Discarding stale subscription snapshot",
                    extra={
                        "source_id": source_id,
                        "user_id": user.pk,
                        "observed_at": observed_at.isoformat(),
                        "last_event_at": record.last_event_at.isoformat(),
                        "reason": "STALE_EVENT",
                    },
                )
                return ServiceResult.success(
                    {"applied": False, "reason": "stale", "user_id": user.pk}
                )

            for name, value in fields.items():
                setattr(record, name, value)
            if observed_at is not None and (
                record.last_event_at is None or observed_at > record.last_event_at
            ):
                record.last_event_at = observed_at
            record.save()

        logger.info(
            "Subscription record reconciled",
            extra={
                "source_id": source_id,
                "user_id": user.pk,
                "plan_type": record.plan_type,
                "status": record.status,
            },
        )
        return ServiceResult.success(
            {
                "applied": True,
                "user_id": user.pk,
                "plan_type": record.plan_type,
                "status": record.status,
            }
        )

    @classmethod
    def _find_checkout_user(
        cls,
        raw_user_id: str | None,
        email: str | None,
        event: InboundEvent,
    ) -> User | None:
        User = get_user_model()

        if raw_user_id:
            try:
                user_id = int(raw_user_id)
            except (TypeError, ValueError):
                user_id = None
            if user_id is not None:
                user = User.objects.filter(pk=user_id).first()
                if user is not None:
                    return user

        if email:
            cls.get_logger().warning(
                "Resolving checkout user by email",
                extra={"event_id": event.event_id, "user_id_metadata": raw_user_id},
            )
            return User.objects.get_by_email(email)

        return None

    @classmethod
    def _user_for_customer(cls, customer_id: str, event: InboundEvent) -> User:
        link = (
            CustomerLink.objects.select_related("user")
            .filter(external_customer_id=customer_id)
            .first()
        )
        if link is None:
            cls.get_logger().warning(
                "Event references unknown customer",
                extra={
                    "event_id": event.event_id,
                    "event_type": event.type,
                    "customer_id": customer_id,
                },
            )
            raise UnknownCustomerError(
                "Unknown customer",
                details={"customer_id": customer_id},
            )
        return link.user

    @classmethod
    def _missing_customer(cls, event: InboundEvent) -> ServiceResult[dict]:
        cls.get_logger().error(
            "Subscription event carries no customer id",
            extra={"event_id": event.event_id, "event_type": event.type},
        )
        return ServiceResult.failure(
            "Subscription event carries no customer id",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )
