"""
Pytest fixtures for Stripe adapter tests.

The stripe SDK classes are patched at module level, so the adapter runs its
real configuration, logging and error translation against canned responses.
"""

from dataclasses import dataclass
from typing import Any
from unittest.mock import patch

import pytest
import stripe

from billing.tests.factories import checkout_session_object, subscription_object


@dataclass
class MockStripeObject:
    """Mock Stripe API object with attribute access and to_dict support."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def to_dict(self) -> dict[str, Any]:
        return self.data


# =============================================================================
# Mock Stripe Client Fixtures
# =============================================================================


@pytest.fixture
def mock_stripe_http_client():
    """Prevent the adapter from building a real HTTP client."""
    with patch("stripe.RequestsClient") as mock:
        yield mock


@pytest.fixture
def mock_stripe_customer():
    with patch("stripe.Customer") as mock:
        mock.create.return_value = MockStripeObject(
            {"id": "cus_new123", "object": "customer"}
        )
        yield mock


@pytest.fixture
def mock_stripe_coupon():
    with patch("stripe.Coupon") as mock:
        mock.create.return_value = MockStripeObject(
            {"id": "SAVE20", "object": "coupon"}
        )
        yield mock


@pytest.fixture
def mock_stripe_checkout_session():
    """Mock stripe.checkout.Session API."""
    with patch("stripe.checkout.Session") as mock:
        mock.create.return_value = MockStripeObject(
            {
                "id": "cs_new123",
                "object": "checkout.session",
                "url": "https://checkout.stripe.com/c/pay/cs_new123",
                "customer": "cus_test_1",
                "subscription": None,
                "payment_status": "unpaid",
                "metadata": {},
            }
        )
        mock.retrieve.return_value = MockStripeObject(
            checkout_session_object(subscription=subscription_object())
        )
        yield mock


@pytest.fixture
def mock_stripe_subscription():
    with patch("stripe.Subscription") as mock:
        mock.retrieve.return_value = MockStripeObject(subscription_object())
        mock.modify.return_value = MockStripeObject(
            subscription_object(cancel_at_period_end=True)
        )
        yield mock


# =============================================================================
# Error Response Fixtures
# =============================================================================


@pytest.fixture
def card_error():
    return stripe.CardError(
        message="Your card was declined.",
        param=None,
        code="card_declined",
    )


@pytest.fixture
def invalid_request_error():
    return stripe.InvalidRequestError(
        message="No such price: 'price_missing'",
        param="line_items[0][price]",
        code="resource_missing",
    )


@pytest.fixture
def coupon_exists_error():
    return stripe.InvalidRequestError(
        message="Coupon already exists.",
        param="id",
        code="resource_already_exists",
    )


@pytest.fixture
def rate_limit_error():
    return stripe.RateLimitError(
        message="Too many requests hit the API too quickly.",
    )


@pytest.fixture
def api_connection_error():
    return stripe.APIConnectionError(
        message="Could not connect to Stripe.",
    )


@pytest.fixture
def api_error():
    return stripe.APIError(message="Internal server error")


@pytest.fixture
def authentication_error():
    return stripe.AuthenticationError(message="Invalid API Key provided")
