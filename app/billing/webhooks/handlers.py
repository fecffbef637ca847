"""
Webhook event handlers for Stripe events.

This module provides a handler registry and the handlers for the
subscription lifecycle events. Handlers are thin: they rebuild the
InboundEvent from the stored payload and delegate to the
SubscriptionReconciler.

Usage:
    from billing.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("invoice.paid")
    def handle_invoice_paid(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from core.services import ServiceResult

from billing.models import WebhookEvent
from billing.services import SubscriptionReconciler
from billing.types import InboundEvent


logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Args:
        event_type: The Stripe event type (e.g., "customer.subscription.updated")
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Event types without a handler are acknowledged with a successful
    result, so the gateway stops redelivering them.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )

    return handler(webhook_event)


# =============================================================================
# Subscription Lifecycle Handlers
# =============================================================================


@register_handler("checkout.session.completed")
def handle_checkout_session_completed(webhook_event: WebhookEvent) -> ServiceResult:
    """Activate the plan bought through a hosted checkout."""
    event = InboundEvent.from_payload(webhook_event.payload)
    return SubscriptionReconciler.reconcile_checkout_completed(event)


@register_handler("customer.subscription.updated")
def handle_subscription_updated(webhook_event: WebhookEvent) -> ServiceResult:
    """Mirror status, plan and billing period changes."""
    event = InboundEvent.from_payload(webhook_event.payload)
    return SubscriptionReconciler.reconcile_subscription_updated(event)


@register_handler("customer.subscription.deleted")
def handle_subscription_deleted(webhook_event: WebhookEvent) -> ServiceResult:
    """Return the member to the free plan."""
    event = InboundEvent.from_payload(webhook_event.payload)
    return SubscriptionReconciler.reconcile_subscription_deleted(event)
