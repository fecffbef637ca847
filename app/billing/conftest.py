"""
Pytest fixtures shared by all billing test packages.

Gateway credentials are set to dummy values for every billing test; calls
to Stripe are always patched at the StripeAdapter boundary or at the stripe
SDK, so nothing leaves the process.
"""

import pytest

from authentication.tests.factories import UserFactory
from billing.tests.factories import (
    CouponRecordFactory,
    CustomerLinkFactory,
    SubscriptionRecordFactory,
)

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture(autouse=True)
def billing_settings(settings):
    """Configure dummy Stripe credentials and a price-to-plan map."""
    settings.STRIPE_SECRET_KEY = "sk_test_dummy"
    settings.STRIPE_WEBHOOK_SECRET = WEBHOOK_SECRET
    settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS = 300
    settings.STRIPE_PRICE_PLAN_MAP = {
        "price_monthly": "monthly",
        "price_yearly": "yearly",
    }
    settings.FRONTEND_URL = "https://app.example.com"
    settings.BILLING_CURRENCY = "usd"
    settings.WEBHOOK_MAX_RETRIES = 5
    settings.WEBHOOK_STUCK_AFTER_MINUTES = 30
    return settings


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


# =============================================================================
# User and Customer Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a test user."""
    return UserFactory()


@pytest.fixture
def other_user(db):
    return UserFactory()


@pytest.fixture
def customer_link(db, user):
    """Link the test user to gateway customer cus_test_1."""
    return CustomerLinkFactory(user=user, external_customer_id="cus_test_1")


@pytest.fixture
def active_subscription(db, user, customer_link):
    """Active monthly subscription sub_test_1 for the test user."""
    return SubscriptionRecordFactory(
        user=user,
        external_customer_id=customer_link.external_customer_id,
        external_subscription_id="sub_test_1",
    )


@pytest.fixture
def save20(db):
    """SAVE20: 20% off, single use."""
    return CouponRecordFactory(code="SAVE20", usage_limit=1)


@pytest.fixture
def auth_client(api_client, user):
    """API client authenticated as the test user."""
    api_client.force_authenticate(user=user)
    return api_client
