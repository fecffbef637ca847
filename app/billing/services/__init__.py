"""
Billing services.

This module provides:
- CheckoutOrchestrator: Starts hosted subscription checkouts
- CouponRedeemer: Validates coupons and consumes their usage quota
- CustomerResolver: Finds or creates the gateway customer of a user
- SubscriptionReconciler: Applies gateway snapshots to local records
- MembershipService: Membership read-out, cancel and reactivate
- classify_plan / plan_for_price: Plan classification

Usage:
    from billing.services import CheckoutOrchestrator

    result = CheckoutOrchestrator.create_checkout(
        user=request.user,
        price_id="price_monthly",
        coupon_code="SAVE20",
    )
"""

from billing.services.checkout_orchestrator import (
    CheckoutOrchestrator,
    build_return_url,
)
from billing.services.coupon_redeemer import CouponRedeemer
from billing.services.customer_resolver import CustomerResolver
from billing.services.membership_service import MembershipService
from billing.services.plan_classifier import classify_plan, plan_for_price
from billing.services.subscription_reconciler import SubscriptionReconciler

__all__ = [
    "CheckoutOrchestrator",
    "CouponRedeemer",
    "CustomerResolver",
    "MembershipService",
    "SubscriptionReconciler",
    "build_return_url",
    "classify_plan",
    "plan_for_price",
]
