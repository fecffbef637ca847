"""
Payment gateway adapters.

Usage:
    from billing.adapters import StripeAdapter

    snapshot = StripeAdapter.retrieve_subscription("sub_123")
"""

from billing.adapters.stripe_adapter import (
    CreateCheckoutSessionParams,
    CustomerResult,
    IdempotencyKeyGenerator,
    StripeAdapter,
    backoff_delay,
    is_retryable_stripe_error,
)

__all__ = [
    "CreateCheckoutSessionParams",
    "CustomerResult",
    "IdempotencyKeyGenerator",
    "StripeAdapter",
    "backoff_delay",
    "is_retryable_stripe_error",
]
