"""
DRF serializers for the billing API.

Request and response bodies use camelCase keys, matching the web client.

Usage:
    serializer = CheckoutRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    price_id = serializer.validated_data["priceId"]
"""

from __future__ import annotations

from rest_framework import serializers

from billing.state_machines import PlanType, SubscriptionState


# =============================================================================
# Requests
# =============================================================================


class CheckoutRequestSerializer(serializers.Serializer):
    """
    Start a hosted checkout.

    Fields:
        priceId: Gateway recurring price id (required)
        couponCode: Optional discount code
        successUrl: Optional redirect after payment
        cancelUrl: Optional redirect when the user backs out
    """

    priceId = serializers.CharField(max_length=255, trim_whitespace=True)
    couponCode = serializers.CharField(
        max_length=64,
        required=False,
        allow_blank=True,
        allow_null=True,
    )
    successUrl = serializers.URLField(required=False, allow_null=True)
    cancelUrl = serializers.URLField(required=False, allow_null=True)


class VerifySessionRequestSerializer(serializers.Serializer):
    """Confirm a checkout after the success redirect."""

    sessionId = serializers.CharField(max_length=255)


# =============================================================================
# Responses
# =============================================================================


class CheckoutResponseSerializer(serializers.Serializer):
    url = serializers.URLField(help_text="Hosted checkout page to redirect to")


class VerifySessionResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    planType = serializers.ChoiceField(choices=PlanType.choices)
    status = serializers.CharField()


class MembershipSerializer(serializers.Serializer):
    """Current membership of the authenticated user."""

    planType = serializers.ChoiceField(choices=PlanType.choices)
    status = serializers.CharField(help_text="Gateway subscription status")
    state = serializers.ChoiceField(choices=SubscriptionState.choices)
    currentPeriodEnd = serializers.DateTimeField(allow_null=True)
    cancelAtPeriodEnd = serializers.BooleanField()
    hasPremiumAccess = serializers.BooleanField()


class MembershipChangeResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    message = serializers.CharField()
    currentPeriodEnd = serializers.DateTimeField(allow_null=True)


class ErrorResponseSerializer(serializers.Serializer):
    """Shape of every billing error response."""

    error = serializers.CharField()
    error_code = serializers.CharField()
    details = serializers.DictField(required=False)
