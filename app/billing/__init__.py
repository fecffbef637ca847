"""
Billing application.

Subscription checkout with coupon redemption, Stripe webhook ingestion and
reconciliation into one SubscriptionRecord per user, and membership
management (details, cancel, reactivate).

Key components:
    - adapters.StripeAdapter: every Stripe API call
    - services: plan classifier, coupon redeemer, customer resolver,
      checkout orchestrator, subscription reconciler, membership service
    - webhooks: signature verification, handler registry, ledger processing
"""
