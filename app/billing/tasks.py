"""
Celery tasks for billing webhooks.

This module provides async tasks for:
- Replaying a webhook ledger entry (operator repair, automatic retry)
- Re-queuing failed webhook events under the retry cap
- Resetting events stuck in processing after a worker crash
- Removing old processed events

First deliveries are processed synchronously by the webhook view; these
tasks only deal with entries that did not complete there.

Usage:
    from billing.tasks import process_webhook_event

    # Replay an event after linking the customer it references
    process_webhook_event.delay(str(webhook_event.id))
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from core.exceptions import BaseApplicationError

from billing.adapters import backoff_delay, is_retryable_stripe_error
from billing.models import WebhookEvent
from billing.state_machines import WebhookEventStatus
from billing.webhooks.processor import WebhookProcessor

logger = logging.getLogger(__name__)


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(bind=True, acks_late=True, max_retries=3)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a webhook ledger entry.

    Retryable gateway errors are retried with exponential backoff; other
    application errors leave the entry failed for retry_failed_webhooks.

    Args:
        webhook_event_id: UUID of the WebhookEvent, as a string

    Returns:
        Dict with processing status
    """
    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.is_processed:
        return {
            "status": "already_processed",
            "webhook_event_id": str(webhook_event_id),
        }

    try:
        result = WebhookProcessor.process(webhook_event)
    except BaseApplicationError as e:
        if is_retryable_stripe_error(e):
            logger.warning(
                "Retryable gateway error processing webhook",
                extra={
                    "webhook_event_id": str(webhook_event_id),
                    "error_code": e.error_code,
                    "attempt": self.request.retries,
                },
            )
            raise self.retry(exc=e, countdown=backoff_delay(self.request.retries))

        return {
            "status": "failed",
            "webhook_event_id": str(webhook_event_id),
            "error_code": e.error_code,
        }

    if not result.success:
        return {
            "status": "failed",
            "webhook_event_id": str(webhook_event_id),
            "error_code": result.error_code,
        }

    return {
        "status": "processed",
        "webhook_event_id": str(webhook_event_id),
        "event_type": webhook_event.event_type,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Finds failed webhooks under WEBHOOK_MAX_RETRIES attempts and re-queues
    them for processing. Scheduled via celery-beat.

    Returns:
        Dict with count of webhooks queued for retry
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=settings.WEBHOOK_MAX_RETRIES,
    ).order_by("created_at")[:100]

    queued_count = 0
    for webhook in failed_webhooks:
        try:
            process_webhook_event.delay(str(webhook.id))
            queued_count += 1
            logger.info(
                "Queued failed webhook for retry",
                extra={
                    "webhook_event_id": str(webhook.id),
                    "stripe_event_id": webhook.stripe_event_id,
                    "retry_count": webhook.retry_count,
                },
            )
        except Exception as e:
            logger.error(
                f"Failed to queue webhook for retry: {e}",
                extra={"webhook_event_id": str(webhook.id)},
            )

    logger.info(
        f"Queued {queued_count} failed webhooks for retry",
        extra={"queued_count": queued_count},
    )

    return {"queued_count": queued_count}


@shared_task
def reset_stuck_webhooks() -> dict:
    """
    Periodic task to reset stuck webhooks.

    Webhooks left in PROCESSING longer than WEBHOOK_STUCK_AFTER_MINUTES
    (worker crash, killed request) are marked FAILED so they get retried.

    Returns:
        Dict with count of webhooks reset
    """
    threshold = timezone.now() - timedelta(minutes=settings.WEBHOOK_STUCK_AFTER_MINUTES)

    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        stuck_since = webhook.updated_at
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save(update_fields=["status", "error_message", "updated_at"])
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "stripe_event_id": webhook.stripe_event_id,
                "stuck_since": stuck_since.isoformat(),
            },
        )

    if reset_count > 0:
        logger.info(
            f"Reset {reset_count} stuck webhooks",
            extra={"reset_count": reset_count},
        )

    return {"reset_count": reset_count}


@shared_task
def cleanup_old_webhooks(days: int = 90) -> dict:
    """
    Periodic task to delete old processed webhook events.

    Failed events are kept for debugging.

    Args:
        days: Delete processed webhooks older than this many days

    Returns:
        Dict with count of webhooks deleted
    """
    cutoff = timezone.now() - timedelta(days=days)

    deleted_count, _ = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSED,
        processed_at__lt=cutoff,
    ).delete()

    if deleted_count > 0:
        logger.info(
            f"Deleted {deleted_count} old webhook events",
            extra={
                "deleted_count": deleted_count,
                "cutoff_date": cutoff.isoformat(),
            },
        )

    return {"deleted_count": deleted_count}
