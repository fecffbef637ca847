"""
Checkout orchestrator for subscription purchases.

This module provides the CheckoutOrchestrator class, the entry point for
starting a hosted subscription checkout. It coordinates the customer
resolver, the coupon redeemer and the Stripe adapter.

Flow:
    1. Validate the price and the gateway configuration
    2. Resolve (or create) the user's gateway customer
    3. Redeem the coupon, if any (expired/exhausted aborts checkout)
    4. Ensure the gateway coupon exists for the redeemed code
    5. Create the subscription-mode checkout session

A gateway failure after redemption gives the coupon use back before the
error propagates. A session the user later abandons keeps its use.

Usage:
    from billing.services import CheckoutOrchestrator

    result = CheckoutOrchestrator.create_checkout(
        user=request.user,
        price_id="price_monthly",
        coupon_code="SAVE20",
        success_url="https://app.example.com/payment/success",
        cancel_url="https://app.example.com/dashboard",
    )
    redirect_to = result.url
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings

from core.exceptions import ValidationError
from core.services import BaseService

from billing.adapters import CreateCheckoutSessionParams, StripeAdapter
from billing.services.coupon_redeemer import CouponRedeemer
from billing.services.customer_resolver import CustomerResolver
from billing.services.plan_classifier import plan_for_price
from billing.types import CheckoutResult

if TYPE_CHECKING:
    from authentication.models import User


logger = logging.getLogger(__name__)


def build_return_url(origin: str | None, path: str) -> str:
    """Join a frontend origin and a path, falling back to FRONTEND_URL."""
    base = (origin or settings.FRONTEND_URL).rstrip("/")
    return f"{base}/{path.lstrip('/')}"


class CheckoutOrchestrator(BaseService):
    """
    Starts hosted subscription checkouts.

    All methods are class methods - no instance state is maintained.
    """

    @classmethod
    def create_checkout(
        cls,
        user: User,
        price_id: str | None,
        coupon_code: str | None = None,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> CheckoutResult:
        """
        Create a checkout session for a subscription price.

        Args:
            user: Authenticated purchaser
            price_id: Gateway recurring price id
            coupon_code: Optional discount code
            success_url: Redirect after payment (default from settings)
            cancel_url: Redirect on abandon (default from settings)

        Returns:
            CheckoutResult with the session id and hosted page URL

        Raises:
            ValidationError: price_id missing
            ConfigurationError: Gateway secret key not configured
            ExpiredCouponError: Coupon expired
            RedemptionLimitExceededError: Coupon quota exhausted
            StripeError: Gateway call failed
        """
        if not price_id or not str(price_id).strip():
            raise ValidationError(
                "Price ID is required",
                error_code="PRICE_REQUIRED",
                details={"priceId": ["This field is required."]},
            )
        price_id = str(price_id).strip()

        StripeAdapter.ensure_configured()

        customer_id = CustomerResolver.resolve(user)

        terms = CouponRedeemer.redeem(coupon_code)

        metadata = {"user_id": str(user.pk)}
        plan = plan_for_price(price_id)
        if plan:
            metadata["plan"] = plan

        try:
            coupon_id = None
            if terms is not None:
                coupon_id = StripeAdapter.ensure_coupon(terms, settings.BILLING_CURRENCY)

            session = StripeAdapter.create_checkout_session(
                CreateCheckoutSessionParams(
                    customer_id=customer_id,
                    price_id=price_id,
                    success_url=success_url or build_return_url(None, settings.BILLING_SUCCESS_PATH),
                    cancel_url=cancel_url or build_return_url(None, settings.BILLING_CANCEL_PATH),
                    metadata=metadata,
                    coupon_id=coupon_id,
                )
            )
        except Exception:
            if terms is not None:
                CouponRedeemer.release(terms.code)
            raise

        logger.info(
            "Checkout session created",
            extra={
                "user_id": user.pk,
                "customer_id": customer_id,
                "price_id": price_id,
                "session_id": session.session_id,
                "coupon_code": terms.code if terms else None,
            },
        )

        return CheckoutResult(session_id=session.session_id, url=session.url or "")
