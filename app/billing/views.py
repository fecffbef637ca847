"""
DRF views for the billing API.

Endpoints:
    POST /api/v1/billing/checkout/               - Start a hosted checkout
    POST /api/v1/billing/checkout/verify/        - Confirm checkout after redirect
    GET  /api/v1/billing/subscription/           - Current membership
    POST /api/v1/billing/subscription/cancel/    - Cancel at period end
    POST /api/v1/billing/subscription/reactivate/ - Undo scheduled cancellation

The Stripe webhook endpoint lives in billing.webhooks.views.

Security:
    All endpoints require a JWT bearer token. Domain errors propagate to
    core.exception_handler, which renders {"error", "error_code"}.
"""

from __future__ import annotations

from django.conf import settings
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.serializers import (
    CheckoutRequestSerializer,
    CheckoutResponseSerializer,
    ErrorResponseSerializer,
    MembershipChangeResponseSerializer,
    MembershipSerializer,
    VerifySessionRequestSerializer,
    VerifySessionResponseSerializer,
)
from billing.services import CheckoutOrchestrator, MembershipService, build_return_url


class CheckoutView(APIView):
    """
    Start a hosted subscription checkout.

    POST /api/v1/billing/checkout/

    Request body:
        {"priceId": "price_xxx", "couponCode": "SAVE20"}

    Returns:
        {"url": "https://checkout.stripe.com/..."}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_checkout",
        summary="Create checkout session",
        description=(
            "Create a subscription-mode checkout session for the given price. "
            "An expired or exhausted coupon aborts the checkout; an unknown "
            "coupon is ignored. Redirect URLs default to the request origin."
        ),
        request=CheckoutRequestSerializer,
        responses={
            200: CheckoutResponseSerializer,
            400: OpenApiResponse(
                response=ErrorResponseSerializer,
                description="Missing price, expired coupon, or coupon limit reached",
            ),
            401: OpenApiResponse(description="Authentication required"),
            500: OpenApiResponse(
                response=ErrorResponseSerializer,
                description="Payment gateway not configured",
            ),
            502: OpenApiResponse(
                response=ErrorResponseSerializer,
                description="Payment gateway error",
            ),
        },
        tags=["Billing - Checkout"],
    )
    def post(self, request):
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        origin = request.headers.get("Origin")
        result = CheckoutOrchestrator.create_checkout(
            user=request.user,
            price_id=data["priceId"],
            coupon_code=data.get("couponCode"),
            success_url=data.get("successUrl")
            or build_return_url(origin, settings.BILLING_SUCCESS_PATH),
            cancel_url=data.get("cancelUrl")
            or build_return_url(origin, settings.BILLING_CANCEL_PATH),
        )

        return Response({"url": result.url})


class VerifyCheckoutView(APIView):
    """
    Confirm a checkout after the gateway redirected back.

    POST /api/v1/billing/checkout/verify/

    Request body:
        {"sessionId": "cs_xxx"}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="verify_checkout",
        summary="Verify checkout session",
        description=(
            "Check that the session is paid and apply the subscription it "
            "created to the requesting user without waiting for the webhook."
        ),
        request=VerifySessionRequestSerializer,
        responses={
            200: VerifySessionResponseSerializer,
            400: OpenApiResponse(
                response=ErrorResponseSerializer,
                description="Payment not completed or no subscription on the session",
            ),
            403: OpenApiResponse(
                response=ErrorResponseSerializer,
                description="Session belongs to another user",
            ),
        },
        tags=["Billing - Checkout"],
    )
    def post(self, request):
        serializer = VerifySessionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MembershipService.verify_checkout_session(
            request.user,
            serializer.validated_data["sessionId"],
        )
        return Response(result)


class SubscriptionView(APIView):
    """
    Current membership of the authenticated user.

    GET /api/v1/billing/subscription/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_subscription",
        summary="Get current subscription",
        description="Users without a subscription are reported on the free plan.",
        responses={200: MembershipSerializer},
        tags=["Billing - Subscription"],
    )
    def get(self, request):
        return Response(MembershipService.get_details(request.user))


class CancelSubscriptionView(APIView):
    """
    Cancel the subscription at the end of the current period.

    POST /api/v1/billing/subscription/cancel/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="cancel_subscription",
        summary="Cancel subscription at period end",
        request=None,
        responses={
            200: MembershipChangeResponseSerializer,
            400: OpenApiResponse(
                response=ErrorResponseSerializer,
                description="No active subscription",
            ),
        },
        tags=["Billing - Subscription"],
    )
    def post(self, request):
        return Response(MembershipService.cancel(request.user))


class ReactivateSubscriptionView(APIView):
    """
    Undo a scheduled cancellation.

    POST /api/v1/billing/subscription/reactivate/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="reactivate_subscription",
        summary="Reactivate subscription",
        request=None,
        responses={
            200: MembershipChangeResponseSerializer,
            400: OpenApiResponse(
                response=ErrorResponseSerializer,
                description="Subscription is not scheduled for cancellation",
            ),
        },
        tags=["Billing - Subscription"],
    )
    def post(self, request):
        return Response(MembershipService.reactivate(request.user))
