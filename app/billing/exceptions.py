"""
Billing domain exceptions.

Exception Hierarchy:
    BaseApplicationError (core)
    ├── BillingError - Business rule failures in checkout/membership (400)
    │   ├── CouponError
    │   │   ├── ExpiredCouponError
    │   │   └── RedemptionLimitExceededError
    │   ├── PaymentNotCompletedError
    │   ├── SubscriptionMissingError
    │   ├── NoActiveSubscriptionError
    │   └── NotScheduledForCancellationError
    ├── AuthenticationError (core)
    │   └── InvalidSignatureError - Webhook signature rejected (400)
    ├── NotFoundError (core)
    │   └── UnknownCustomerError - Event references no known user (404)
    └── ExternalServiceError (core)
        └── CollaboratorError - Gateway or store call failed (502)
            └── StripeError (+ is_retryable)
                ├── StripeCardDeclinedError
                ├── StripeInvalidRequestError
                ├── StripeRateLimitError (retryable)
                └── StripeAPIUnavailableError (retryable)

Usage:
    from billing.exceptions import ExpiredCouponError

    raise ExpiredCouponError("Coupon has expired", details={"code": code})
"""

from __future__ import annotations

from typing import Any

from core.exceptions import (
    AuthenticationError,
    BaseApplicationError,
    ExternalServiceError,
    NotFoundError,
)


# =============================================================================
# Business Rule Errors
# =============================================================================


class BillingError(BaseApplicationError):
    """Base exception for billing business rule failures."""

    default_error_code: str = "BILLING_ERROR"
    http_status: int = 400


class CouponError(BillingError):
    """Base exception for coupon redemption failures that abort checkout."""

    default_error_code: str = "COUPON_ERROR"


class ExpiredCouponError(CouponError):
    """The coupon exists and is active but its expiry time has passed."""

    default_error_code: str = "COUPON_EXPIRED"


class RedemptionLimitExceededError(CouponError):
    """
    The coupon has already been redeemed usage_limit times.

    Raised when the conditional increment matched no row because the quota
    is exhausted, including when a concurrent checkout took the last use.
    """

    default_error_code: str = "COUPON_LIMIT_REACHED"


class PaymentNotCompletedError(BillingError):
    """A checkout session was verified before the gateway marked it paid."""

    default_error_code: str = "PAYMENT_NOT_COMPLETED"


class SubscriptionMissingError(BillingError):
    """A paid checkout session carries no subscription."""

    default_error_code: str = "SUBSCRIPTION_MISSING"


class NoActiveSubscriptionError(BillingError):
    """Membership change requested by a user without a paid subscription."""

    default_error_code: str = "NO_ACTIVE_SUBSCRIPTION"


class NotScheduledForCancellationError(BillingError):
    """Reactivation requested for a subscription that is not cancelling."""

    default_error_code: str = "NOT_SCHEDULED_FOR_CANCELLATION"


# =============================================================================
# Webhook Errors
# =============================================================================


class InvalidSignatureError(AuthenticationError):
    """
    Webhook delivery failed signature verification.

    Raised for a missing header, a body that is not what the gateway signed,
    or a MAC mismatch. Answered with 400 like any other rejected delivery.
    """

    default_error_code: str = "INVALID_SIGNATURE"
    http_status: int = 400


class UnknownCustomerError(NotFoundError):
    """
    A gateway event references a customer or user that cannot be resolved.

    Nothing is written; the event stays FAILED in the webhook ledger so an
    operator can link the customer and replay it.
    """

    default_error_code: str = "UNKNOWN_CUSTOMER"
    http_status: int = 404


# =============================================================================
# Collaborator Errors
# =============================================================================


class CollaboratorError(ExternalServiceError):
    """A call to the payment gateway or the persistent store failed."""

    default_error_code: str = "COLLABORATOR_ERROR"
    http_status: int = 502


class StripeError(CollaboratorError):
    """
    Base exception for all Stripe-related errors.

    Attributes:
        stripe_code: Stripe's error code, when Stripe supplied one
        is_retryable: Whether the same call may succeed if repeated

    Example:
        try:
            StripeAdapter.retrieve_subscription(subscription_id)
        except StripeError as e:
            if e.is_retryable:
                raise self.retry(exc=e)
            raise
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code


class StripeCardDeclinedError(StripeError):
    """Card was declined by the issuing bank."""

    default_error_code: str = "CARD_DECLINED"


class StripeInvalidRequestError(StripeError):
    """Stripe rejected the request parameters or the resource does not exist."""

    default_error_code: str = "INVALID_STRIPE_REQUEST"


class StripeRateLimitError(StripeError):
    """Too many requests to Stripe; retry with backoff."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """Network failure, timeout, or Stripe server error; retry with backoff."""

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True
