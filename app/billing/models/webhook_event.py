"""
WebhookEvent model: the idempotency ledger for gateway notifications.

Every verified delivery is recorded by its gateway event id. A delivery whose
event is already PROCESSED is acknowledged without touching subscription
state again; FAILED events are re-run when the gateway retries, by the
periodic retry task, or on operator request.

Usage:
    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=event.event_id,
        defaults={"event_type": event.type, "payload": event.payload},
    )
    if webhook_event.is_processed:
        return duplicate_ack()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from billing.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks Stripe webhook events for idempotent processing.

    Processing Flow:
        1. Delivery arrives, signature verified
        2. Insert/get WebhookEvent by stripe_event_id
        3. If PROCESSED -> acknowledge as duplicate
        4. Mark PROCESSING, dispatch to the registered handler
        5. Mark PROCESSED or FAILED

    Fields:
        stripe_event_id: Unique Stripe Event ID (evt_xxx)
        event_type: Type of webhook event
        payload: Full verified JSON envelope
        status: Processing status
        processed_at: When event was successfully processed
        error_message: Error details if processing failed
        retry_count: Number of processing attempts
    """

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Stripe event type (e.g., 'customer.subscription.updated')",
    )

    payload = models.JSONField(
        help_text="Full verified webhook payload (JSON)",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        db_table = "billing_webhook_event"
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(
                fields=["status", "created_at"],
                name="billing_wh_status_created_idx",
            ),
            models.Index(
                fields=["status", "retry_count"],
                name="billing_wh_status_retry_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    @property
    def can_retry(self) -> bool:
        """Failed and still under WEBHOOK_MAX_RETRIES attempts."""
        return self.is_failed and self.retry_count < settings.WEBHOOK_MAX_RETRIES

    # ==========================================================================
    # Helper Methods (do not save - caller must save)
    # ==========================================================================

    def mark_processing(self) -> None:
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object_id(self) -> str | None:
        """Extract payload.data.object.id, if present."""
        try:
            return self.payload.get("data", {}).get("object", {}).get("id")
        except (AttributeError, TypeError):
            return None
