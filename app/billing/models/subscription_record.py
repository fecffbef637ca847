"""
SubscriptionRecord model holding each user's reconciled membership.

There is at most one record per user (the user is the primary key). A user
without a record is on the implicit free plan. The record is written only by
billing.services.subscription_reconciler (gateway snapshots) and by the
membership service's cancel/reactivate mirror writes.

Ordering:
    last_event_at stores the gateway timestamp of the snapshot currently held.
    A snapshot older than that is discarded, so out-of-order delivery cannot
    regress the record to stale data.

Usage:
    from billing.models import SubscriptionRecord

    record = SubscriptionRecord.objects.filter(user=user).first()
    if record and record.has_premium_access:
        ...
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel

from billing.state_machines import (
    IMPLICIT_FREE_STATUS,
    PlanType,
    SubscriptionState,
    derive_state,
)


class SubscriptionRecord(BaseModel):
    """
    Durable, reconciled subscription state of one user.

    Fields:
        user: Owning user (primary key)
        external_customer_id: Stripe Customer ID (cus_xxx)
        external_subscription_id: Stripe Subscription ID (sub_xxx), null when free
        plan_type: free / monthly / yearly
        status: Stripe subscription status string, copied verbatim
        current_period_start: Start of the paid period
        current_period_end: End of the paid period
        cancel_at_period_end: Whether the subscription ends at period end
        last_event_at: Gateway timestamp of the stored snapshot
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="subscription_record",
        help_text="User this subscription belongs to",
    )

    external_customer_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )

    external_subscription_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe Subscription ID (sub_xxx); empty on the free plan",
    )

    plan_type = models.CharField(
        max_length=20,
        choices=PlanType.choices,
        default=PlanType.FREE,
        help_text="Billing plan",
    )

    status = models.CharField(
        max_length=32,
        default=IMPLICIT_FREE_STATUS,
        help_text="Stripe subscription status (active, past_due, canceled, ...)",
    )

    current_period_start = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Start of the current billing period",
    )

    current_period_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="End of the current billing period",
    )

    cancel_at_period_end = models.BooleanField(
        default=False,
        help_text="Subscription ends when the current period ends",
    )

    last_event_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Gateway timestamp of the snapshot stored in this record",
    )

    class Meta:
        db_table = "billing_subscription_record"
        ordering = ["-updated_at"]
        verbose_name = "Subscription Record"
        verbose_name_plural = "Subscription Records"

    def __str__(self) -> str:
        return f"SubscriptionRecord({self.user_id}, {self.plan_type}, {self.status})"

    @property
    def state(self) -> SubscriptionState:
        """Derived membership state."""
        return derive_state(self.plan_type, self.status)

    @property
    def has_premium_access(self) -> bool:
        """Whether the user currently has paid features."""
        return self.state == SubscriptionState.ACTIVE
