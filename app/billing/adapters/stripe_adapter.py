"""
Stripe API adapter for subscription billing.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions. All Stripe calls go through this adapter to
ensure consistent error handling, timeouts, idempotency, and observability.

Features:
- Client timeout and bounded network retries on every call
- Automatic error translation to billing exceptions
- Structured logging with timing metrics
- Idempotency keys where a retried call must not duplicate a resource

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret (used by the event verifier)
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Network retries for transient failures (default: 3)

Usage:
    from billing.adapters import StripeAdapter, CreateCheckoutSessionParams

    customer = StripeAdapter.create_customer(
        email=user.email,
        user_id=str(user.pk),
        idempotency_key=IdempotencyKeyGenerator.generate("create_customer", user.pk),
    )

    session = StripeAdapter.create_checkout_session(
        CreateCheckoutSessionParams(
            customer_id=customer.id,
            price_id="price_123",
            success_url="https://app.example.com/payment/success",
            cancel_url="https://app.example.com/dashboard",
            metadata={"user_id": str(user.pk)},
        )
    )
"""

from __future__ import annotations

import hashlib
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import stripe
from django.conf import settings

from core.exceptions import ConfigurationError

from billing.exceptions import (
    InvalidSignatureError,
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeError,
    StripeInvalidRequestError,
    StripeRateLimitError,
)
from billing.state_machines import DiscountType
from billing.types import CheckoutSessionSnapshot, DiscountTerms, SubscriptionSnapshot


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreateCheckoutSessionParams:
    """
    Parameters for creating a subscription-mode Checkout Session.

    Attributes:
        customer_id: Stripe Customer ID the session is bound to
        price_id: Recurring Price ID (single line item, quantity 1)
        success_url: Redirect target after payment
        cancel_url: Redirect target when the user backs out
        metadata: Copied onto the session and onto the subscription
        coupon_id: Optional Stripe coupon to apply as a discount
        idempotency_key: Optional key for idempotent creation
    """

    customer_id: str
    price_id: str
    success_url: str
    cancel_url: str
    metadata: dict[str, str] = field(default_factory=dict)
    coupon_id: str | None = None
    idempotency_key: str | None = None

    def __post_init__(self) -> None:
        if not self.customer_id:
            raise ValueError("customer_id is required")
        if not self.price_id:
            raise ValueError("price_id is required")


@dataclass
class CustomerResult:
    """
    Result from Stripe Customer operations.

    Attributes:
        id: Customer ID (cus_xxx)
        email: Customer email
        metadata: Attached metadata
    """

    id: str
    email: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The same operation on the same entity yields the same key, so a request
    retried after a timeout returns the resource created by the first try
    instead of a duplicate.

    Example:
        key = IdempotencyKeyGenerator.generate("create_customer", user.pk)
        # "create_customer:42:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | int | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def is_retryable_stripe_error(error: Exception) -> bool:
    """
    Check if a Stripe error is retryable.

    Used by Celery tasks to decide whether to retry:

        except StripeError as e:
            if is_retryable_stripe_error(e):
                raise self.retry(exc=e, countdown=backoff_delay(self.request.retries))
            raise
    """
    if isinstance(error, StripeError):
        return getattr(error, "is_retryable", False)
    return False


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are class methods - no instance state is maintained.
    Thread-safe for use from web workers and Celery workers.

    Usage:
        customer = StripeAdapter.create_customer(email, user_id, idem_key)
        snapshot = StripeAdapter.retrieve_subscription("sub_123")
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def ensure_configured() -> None:
        """
        Raise if the Stripe secret key is missing.

        Raises:
            ConfigurationError: STRIPE_SECRET_KEY is empty
        """
        if not settings.STRIPE_SECRET_KEY:
            raise ConfigurationError(
                "Payment gateway is not configured",
                error_code="STRIPE_NOT_CONFIGURED",
            )

    @classmethod
    def _configure_stripe(cls) -> None:
        """Configure Stripe client with API key, timeout and retries."""
        cls.ensure_configured()
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = settings.STRIPE_MAX_RETRIES
        stripe.default_http_client = stripe.RequestsClient(
            timeout=settings.STRIPE_API_TIMEOUT_SECONDS
        )

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Customers
    # =========================================================================

    @classmethod
    def create_customer(
        cls,
        email: str,
        user_id: str,
        idempotency_key: str | None = None,
    ) -> CustomerResult:
        """
        Create a Stripe Customer tagged with the application user id.

        Args:
            email: Customer email
            user_id: Application user id, stored as metadata.user_id
            idempotency_key: Key for idempotent creation

        Returns:
            CustomerResult with the new customer's id

        Raises:
            StripeInvalidRequestError: Invalid parameters
            StripeAPIUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_customer",
            "user_id": user_id,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            customer = stripe.Customer.create(
                email=email,
                metadata={"user_id": user_id},
                idempotency_key=idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "customer_id": customer.id,
                    "duration_ms": duration_ms,
                },
            )

            return CustomerResult(
                id=customer.id,
                email=email,
                metadata={"user_id": user_id},
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Coupons
    # =========================================================================

    @classmethod
    def ensure_coupon(cls, terms: DiscountTerms, currency: str | None = None) -> str:
        """
        Make sure a Stripe coupon with id == terms.code exists.

        Creates the coupon and treats "already exists" as success, so two
        concurrent checkouts with the same code both end up with a usable
        coupon id without a retrieve-then-create window.

        Args:
            terms: Redeemed discount terms (code is the coupon id)
            currency: Currency for fixed-amount discounts
                (default: settings.BILLING_CURRENCY)

        Returns:
            The Stripe coupon id

        Raises:
            StripeInvalidRequestError: Invalid discount parameters
            StripeAPIUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "ensure_coupon",
            "coupon_id": terms.code,
            "discount_type": terms.discount_type,
        }

        if terms.discount_type == DiscountType.PERCENTAGE:
            discount_params: dict[str, Any] = {"percent_off": float(terms.discount_value)}
        else:
            amount_cents = (Decimal(terms.discount_value) * 100).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
            discount_params = {
                "amount_off": int(amount_cents),
                "currency": currency or settings.BILLING_CURRENCY,
            }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            coupon = stripe.Coupon.create(
                id=terms.code,
                name=terms.code,
                duration="forever",
                **discount_params,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={**log_context, "created": True, "duration_ms": duration_ms},
            )
            return coupon.id

        except stripe.InvalidRequestError as e:
            if e.code == "resource_already_exists":
                duration_ms = (time.time() - start_time) * 1000
                logger.info(
                    "Stripe coupon already exists",
                    extra={**log_context, "created": False, "duration_ms": duration_ms},
                )
                return terms.code
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Checkout Sessions
    # =========================================================================

    @classmethod
    def create_checkout_session(
        cls,
        params: CreateCheckoutSessionParams,
    ) -> CheckoutSessionSnapshot:
        """
        Create a subscription-mode Checkout Session.

        The metadata is attached both to the session and to the subscription
        it creates, so later subscription events can still be traced to the
        user.

        Returns:
            CheckoutSessionSnapshot with id and hosted url

        Raises:
            StripeInvalidRequestError: Unknown price or invalid parameters
            StripeAPIUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_checkout_session",
            "customer_id": params.customer_id,
            "price_id": params.price_id,
            "coupon_id": params.coupon_id,
        }

        session_params: dict[str, Any] = {
            "customer": params.customer_id,
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": params.price_id, "quantity": 1}],
            "success_url": params.success_url,
            "cancel_url": params.cancel_url,
            "metadata": params.metadata,
            "subscription_data": {"metadata": params.metadata},
        }
        if params.coupon_id:
            session_params["discounts"] = [{"coupon": params.coupon_id}]
        if params.idempotency_key:
            session_params["idempotency_key"] = params.idempotency_key

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            session = stripe.checkout.Session.create(**session_params)

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "session_id": session.id,
                    "duration_ms": duration_ms,
                },
            )

            return CheckoutSessionSnapshot.from_stripe(session.to_dict())

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def retrieve_checkout_session(cls, session_id: str) -> CheckoutSessionSnapshot:
        """
        Retrieve a Checkout Session with its subscription expanded.

        Raises:
            StripeInvalidRequestError: Session not found
            StripeAPIUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_checkout_session",
            "session_id": session_id,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            session = stripe.checkout.Session.retrieve(
                session_id,
                expand=["subscription"],
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "payment_status": session.payment_status,
                    "duration_ms": duration_ms,
                },
            )

            return CheckoutSessionSnapshot.from_stripe(session.to_dict())

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Subscriptions
    # =========================================================================

    @classmethod
    def retrieve_subscription(cls, subscription_id: str) -> SubscriptionSnapshot:
        """
        Retrieve a Subscription.

        Raises:
            StripeInvalidRequestError: Subscription not found
            StripeAPIUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_subscription",
            "subscription_id": subscription_id,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            subscription = stripe.Subscription.retrieve(subscription_id)

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "status": subscription.status,
                    "duration_ms": duration_ms,
                },
            )

            return SubscriptionSnapshot.from_stripe(subscription.to_dict())

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def set_cancel_at_period_end(
        cls,
        subscription_id: str,
        cancel_at_period_end: bool,
    ) -> SubscriptionSnapshot:
        """
        Schedule or unschedule cancellation at the end of the billing period.

        Setting the flag is naturally idempotent, so no idempotency key is
        sent (a key would pin the first response for 24 hours and break a
        cancel -> reactivate -> cancel sequence).

        Raises:
            StripeInvalidRequestError: Subscription not found or not modifiable
            StripeAPIUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "set_cancel_at_period_end",
            "subscription_id": subscription_id,
            "cancel_at_period_end": cancel_at_period_end,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            subscription = stripe.Subscription.modify(
                subscription_id,
                cancel_at_period_end=cancel_at_period_end,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "status": subscription.status,
                    "duration_ms": duration_ms,
                },
            )

            return SubscriptionSnapshot.from_stripe(subscription.to_dict())

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: str,
        signature: str,
        secret: str,
        tolerance: int | None = None,
    ) -> None:
        """
        Verify a Stripe-Signature header against the exact payload text.

        Uses Stripe's own verification primitive (HMAC-SHA256 over
        "{timestamp}.{payload}", constant-time comparison, timestamp
        tolerance). Does not parse the payload.

        Raises:
            InvalidSignatureError: Header malformed, stale, or MAC mismatch
        """
        try:
            stripe.WebhookSignature.verify_header(
                payload,
                signature,
                secret,
                tolerance=tolerance,
            )
        except stripe.SignatureVerificationError as e:
            cls.get_logger().warning(
                "Webhook signature verification failed",
                extra={"operation": "verify_webhook_signature", "error": str(e)},
            )
            raise InvalidSignatureError("Invalid signature") from e

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to billing exceptions.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInvalidRequestError: Invalid request parameters
            StripeRateLimitError: Rate limited
            StripeAPIUnavailableError: API unavailable or timed out
            ConfigurationError: Stripe rejected the API key
        """
        if isinstance(error, (StripeError, ConfigurationError)):
            raise error

        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": getattr(error, "decline_code", None)},
            )
            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
            ) from error

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise StripeInvalidRequestError(
                str(error.user_message or error),
                stripe_code=error.code,
            ) from error

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        elif isinstance(error, stripe.APIConnectionError):
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            ) from error

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise ConfigurationError(
                "Payment gateway rejected the configured API key",
                error_code="STRIPE_AUTHENTICATION_FAILED",
            ) from error

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                "Unexpected payment gateway error",
                stripe_code="unknown_error",
            ) from error
