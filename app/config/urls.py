"""
URL configuration for the billing service.

URL Structure:
    /                                   - ReDoc API documentation
    /admin/                             - Django admin interface
    /health/                            - Health check endpoint (load balancers, Docker)
    /schema/                            - OpenAPI schema (YAML)
    /api/v1/billing/                    - Billing endpoints
        checkout/                       - Create a subscription checkout session (POST)
        checkout/verify/                - Sync a completed checkout after redirect (POST)
        subscription/                   - Current subscription details (GET)
        subscription/cancel/            - Cancel at period end (POST)
        subscription/reactivate/        - Undo a scheduled cancellation (POST)
        webhooks/stripe/                - Stripe webhook endpoint (POST)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("billing/", include("billing.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Billing Admin"
admin.site.site_title = "Billing Admin Portal"
admin.site.index_title = "Subscriptions, coupons and webhook events"
