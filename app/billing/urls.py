"""
URL configuration for the billing app.

All routes are prefixed with /api/v1/billing/ when included in the main URLconf.
"""

from django.urls import path

from billing import views
from billing.webhooks.views import stripe_webhook

app_name = "billing"

urlpatterns = [
    path("checkout/", views.CheckoutView.as_view(), name="checkout"),
    path("checkout/verify/", views.VerifyCheckoutView.as_view(), name="checkout-verify"),
    path("subscription/", views.SubscriptionView.as_view(), name="subscription"),
    path(
        "subscription/cancel/",
        views.CancelSubscriptionView.as_view(),
        name="subscription-cancel",
    ),
    path(
        "subscription/reactivate/",
        views.ReactivateSubscriptionView.as_view(),
        name="subscription-reactivate",
    ),
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe-webhook"),
]
