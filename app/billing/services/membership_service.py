"""
Membership read-out and self-service changes.

This module provides the MembershipService class which answers "what plan is
this user on" and lets members schedule or undo cancellation at period end.
It also confirms a checkout after the success redirect.

Cancel/reactivate change the gateway subscription first and then mirror the
flag locally. The mirror write leaves last_event_at alone, so the
customer.subscription.updated event that follows is still applied.

Usage:
    from billing.services import MembershipService

    details = MembershipService.get_details(request.user)
    MembershipService.cancel(request.user)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from django.utils import timezone

from core.exceptions import PermissionDeniedError
from core.services import BaseService

from billing.adapters import StripeAdapter
from billing.exceptions import (
    NoActiveSubscriptionError,
    NotScheduledForCancellationError,
    PaymentNotCompletedError,
    SubscriptionMissingError,
)
from billing.models import CustomerLink, SubscriptionRecord
from billing.services.subscription_reconciler import SubscriptionReconciler
from billing.state_machines import (
    IMPLICIT_FREE_STATUS,
    PlanType,
    SubscriptionState,
)

if TYPE_CHECKING:
    from authentication.models import User

    from billing.types import CheckoutSessionSnapshot


# Derived states in which the member can still schedule cancellation
CANCELLABLE_STATES = frozenset({SubscriptionState.ACTIVE, SubscriptionState.PAST_DUE})


class MembershipService(BaseService):
    """Reads and manages a user's paid membership."""

    @classmethod
    def get_record(cls, user: User) -> SubscriptionRecord | None:
        return SubscriptionRecord.objects.filter(user=user).first()

    @classmethod
    def get_details(cls, user: User) -> dict[str, Any]:
        """
        Describe the user's membership in API response form.

        A user without a record is on the implicit free plan.
        """
        record = cls.get_record(user)
        if record is None:
            return {
                "planType": PlanType.FREE.value,
                "status": IMPLICIT_FREE_STATUS,
                "state": SubscriptionState.FREE.value,
                "currentPeriodEnd": None,
                "cancelAtPeriodEnd": False,
                "hasPremiumAccess": False,
            }

        return {
            "planType": record.plan_type,
            "status": record.status,
            "state": record.state.value,
            "currentPeriodEnd": (
                record.current_period_end.isoformat() if record.current_period_end else None
            ),
            "cancelAtPeriodEnd": record.cancel_at_period_end,
            "hasPremiumAccess": record.has_premium_access,
        }

    @classmethod
    def verify_checkout_session(cls, user: User, session_id: str) -> dict[str, Any]:
        """
        Confirm a checkout after the success redirect and apply it.

        Raises:
            PermissionDeniedError: Session was started by another user, or
                carries no owner the caller can be matched against
            PaymentNotCompletedError: Session is not paid yet
            SubscriptionMissingError: Paid session has no subscription
            StripeError: Session lookup failed
        """
        logger = cls.get_logger()
        session = StripeAdapter.retrieve_checkout_session(session_id)

        if not cls._owns_session(user, session):
            logger.warning(
                "Checkout session verified by a different user",
                extra={"session_id": session_id, "user_id": user.pk},
            )
            raise PermissionDeniedError(
                "Checkout session belongs to another user",
                error_code="SESSION_OWNERSHIP_MISMATCH",
            )

        if session.payment_status != "paid":
            raise PaymentNotCompletedError(
                "Payment not completed",
                details={"payment_status": session.payment_status},
            )

        if not session.subscription_id:
            raise SubscriptionMissingError("No subscription found for this session")

        result = SubscriptionReconciler.sync_checkout_session(user, session)
        record = cls.get_record(user)

        logger.info(
            "Checkout session verified",
            extra={
                "session_id": session_id,
                "user_id": user.pk,
                "applied": result.data.get("applied") if result.data else None,
            },
        )

        return {
            "success": True,
            "planType": record.plan_type if record else PlanType.FREE.value,
            "status": record.status if record else IMPLICIT_FREE_STATUS,
        }

    @classmethod
    def cancel(cls, user: User) -> dict[str, Any]:
        """
        Schedule the paid subscription to end at the current period end.

        Raises:
            NoActiveSubscriptionError: No paid, non-canceled subscription
            StripeError: Gateway update failed
        """
        record = cls.get_record(user)
        if (
            record is None
            or not record.external_subscription_id
            or record.state not in CANCELLABLE_STATES
        ):
            raise NoActiveSubscriptionError("No active subscription to cancel")

        if record.cancel_at_period_end:
            return cls._cancel_response(record.current_period_end)

        snapshot = StripeAdapter.set_cancel_at_period_end(
            record.external_subscription_id, True
        )
        period_end = snapshot.current_period_end or record.current_period_end
        cls._mirror_cancel_flag(user, True, period_end)

        cls.get_logger().info(
            "Subscription scheduled for cancellation",
            extra={
                "user_id": user.pk,
                "subscription_id": record.external_subscription_id,
            },
        )
        return cls._cancel_response(period_end)

    @classmethod
    def reactivate(cls, user: User) -> dict[str, Any]:
        """
        Undo a scheduled cancellation.

        Raises:
            NotScheduledForCancellationError: Nothing to undo
            StripeError: Gateway update failed
        """
        record = cls.get_record(user)
        if (
            record is None
            or not record.external_subscription_id
            or not record.cancel_at_period_end
        ):
            raise NotScheduledForCancellationError(
                "Subscription is not scheduled for cancellation"
            )

        snapshot = StripeAdapter.set_cancel_at_period_end(
            record.external_subscription_id, False
        )
        period_end = snapshot.current_period_end or record.current_period_end
        cls._mirror_cancel_flag(user, False, period_end)

        cls.get_logger().info(
            "Subscription reactivated",
            extra={
                "user_id": user.pk,
                "subscription_id": record.external_subscription_id,
            },
        )
        return {
            "success": True,
            "message": "Subscription reactivated",
            "currentPeriodEnd": period_end.isoformat() if period_end else None,
        }

    @staticmethod
    def _mirror_cancel_flag(user: User, cancel_at_period_end: bool, period_end) -> None:
        SubscriptionRecord.objects.filter(user=user).update(
            cancel_at_period_end=cancel_at_period_end,
            current_period_end=period_end,
            updated_at=timezone.now(),
        )

    @staticmethod
    def _cancel_response(period_end) -> dict[str, Any]:
        return {
            "success": True,
            "message": "Subscription will be canceled at the end of the billing period",
            "currentPeriodEnd": period_end.isoformat() if period_end else None,
        }

    @staticmethod
    def _owns_session(user: User, session: CheckoutSessionSnapshot) -> bool:
        """Sessions without a user_id are matched on the caller's own customer link."""
        owner = session.metadata.get("user_id")
        if owner:
            return owner == str(user.pk)
        if not session.customer_id:
            return False
        return CustomerLink.objects.filter(
            user=user,
            external_customer_id=session.customer_id,
        ).exists()
