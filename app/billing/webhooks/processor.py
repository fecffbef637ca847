"""
Ledger-backed processing of a single webhook event.

Shared by the webhook view (first delivery, synchronous) and the Celery
tasks (operator replay and automatic retry of failed entries).
"""

from __future__ import annotations

from django.db import transaction

from core.services import BaseService, ServiceResult

from billing.models import WebhookEvent
from billing.webhooks.handlers import dispatch_webhook


class WebhookProcessor(BaseService):
    """Runs the registered handler for a ledger entry and records the outcome."""

    @classmethod
    def process(cls, webhook_event: WebhookEvent) -> ServiceResult:
        """
        Process a ledger entry exactly once.

        The handler runs in its own transaction: if it raises, its writes
        are rolled back, the entry is marked failed and the exception
        propagates to the caller.

        Returns:
            The handler's ServiceResult; success with duplicate=True when the
            entry had already been processed
        """
        logger = cls.get_logger()
        log_context = {
            "stripe_event_id": webhook_event.stripe_event_id,
            "event_type": webhook_event.event_type,
        }

        if webhook_event.is_processed:
            logger.info("Webhook already processed", extra=log_context)
            return ServiceResult.success({"duplicate": True})

        webhook_event.mark_processing()
        webhook_event.save(update_fields=["status", "retry_count", "updated_at"])

        try:
            with transaction.atomic():
                result = dispatch_webhook(webhook_event)
        except Exception as e:
            webhook_event.mark_failed(f"{type(e).__name__}: {e}")
            webhook_event.save(update_fields=["status", "error_message", "updated_at"])
            logger.warning(
                "Webhook handler raised",
                extra={**log_context, "error": str(e)},
            )
            raise

        if result.success:
            webhook_event.mark_processed()
            logger.info("Webhook processed", extra=log_context)
        else:
            webhook_event.mark_failed(result.error or "Handler failed")
            logger.warning(
                "Webhook handler failed",
                extra={**log_context, "error_code": result.error_code},
            )

        webhook_event.save(
            update_fields=["status", "processed_at", "error_message", "updated_at"]
        )
        return result
