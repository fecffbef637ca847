"""
Webhook endpoint view for Stripe.

The view:
1. Verifies the webhook signature against the raw body
2. Creates/retrieves the WebhookEvent ledger entry (idempotent)
3. Processes the event synchronously through the ledger
4. Answers with a small JSON acknowledgement or a JSON error

Processing happens inside the request so that the gateway learns about
failures (unknown customer, gateway lookup errors) from the status code
and redelivers. Failed entries can also be replayed by the Celery tasks.

Usage:
    # In urls.py
    from billing.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe-webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from core.exceptions import BaseApplicationError

from billing.models import WebhookEvent
from billing.state_machines import WebhookEventStatus
from billing.webhooks.processor import WebhookProcessor
from billing.webhooks.verifier import EventVerifier


logger = logging.getLogger(__name__)

# Handler failure codes that are the sender's fault
CLIENT_ERROR_CODES = {"INVALID_WEBHOOK_PAYLOAD": 400, "UNKNOWN_CUSTOMER": 404}


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive and process Stripe webhook events.

    Security:
    - Signature verification prevents spoofed webhooks
    - CSRF exemption required for external webhooks
    - Only POST requests accepted

    Idempotency:
    - WebhookEvent.stripe_event_id is unique
    - Already processed events return 200 with duplicate=true

    Returns:
        JsonResponse with status:
        - 200: Event processed, ignored, or duplicate
        - 400: Invalid signature or payload
        - 404: Event references an unknown customer
        - 500: Configuration or unexpected error
        - 502: Gateway call failed while processing
    """
    try:
        event = EventVerifier.verify(
            request.body,
            request.headers.get("Stripe-Signature"),
        )
    except BaseApplicationError as e:
        return JsonResponse(e.to_dict(), status=e.http_status)

    logger.info(
        f"Received Stripe webhook: {event.type}",
        extra={"stripe_event_id": event.event_id, "event_type": event.type},
    )

    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=event.event_id,
        defaults={
            "event_type": event.type,
            "payload": event.payload,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.is_processed:
        logger.info(
            "Webhook already processed, returning success",
            extra={"stripe_event_id": event.event_id},
        )
        return JsonResponse(
            {"received": True, "event_type": event.type, "duplicate": True}
        )

    try:
        result = WebhookProcessor.process(webhook_event)
    except BaseApplicationError as e:
        log = logger.error if e.http_status >= 500 else logger.warning
        log(
            "Webhook processing failed",
            extra={
                "stripe_event_id": event.event_id,
                "event_type": event.type,
                "error_code": e.error_code,
            },
        )
        return JsonResponse(e.to_dict(), status=e.http_status)
    except Exception:
        logger.exception(
            "Unexpected error processing webhook",
            extra={"stripe_event_id": event.event_id, "event_type": event.type},
        )
        return JsonResponse(
            {"error": "Internal server error", "error_code": "INTERNAL_ERROR"},
            status=500,
        )

    if not result.success:
        status = CLIENT_ERROR_CODES.get(result.error_code or "", 500)
        return JsonResponse(result.to_response(), status=status)

    return JsonResponse({"received": True, "event_type": event.type})
