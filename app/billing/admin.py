"""
Billing admin configuration.

Coupons are managed here. Customer links and subscription records are
written by the billing services and webhooks and are read-only in the admin,
except that an operator may add a missing customer link before replaying a
webhook that failed with UNKNOWN_CUSTOMER.
"""

from django.contrib import admin

from billing.models import CouponRecord, CustomerLink, SubscriptionRecord, WebhookEvent


@admin.register(CouponRecord)
class CouponRecordAdmin(admin.ModelAdmin):
    list_display = [
        "code",
        "discount_type",
        "discount_value",
        "used_count",
        "usage_limit",
        "expires_at",
        "is_active",
    ]
    list_filter = ["discount_type", "is_active"]
    search_fields = ["code"]
    readonly_fields = ["used_count", "created_at", "updated_at"]
    ordering = ["-created_at"]


@admin.register(CustomerLink)
class CustomerLinkAdmin(admin.ModelAdmin):
    list_display = ["user", "external_customer_id", "email", "created_at"]
    search_fields = ["external_customer_id", "email", "user__email"]
    raw_id_fields = ["user"]
    readonly_fields = ["created_at", "updated_at"]
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        """Links are never deleted; the gateway customer outlives subscriptions."""
        return False


@admin.register(SubscriptionRecord)
class SubscriptionRecordAdmin(admin.ModelAdmin):
    """
    Read-only view of reconciled memberships.

    Records mirror the gateway; edit the subscription in Stripe instead.
    """

    list_display = [
        "user",
        "plan_type",
        "status",
        "current_period_end",
        "cancel_at_period_end",
        "last_event_at",
        "updated_at",
    ]
    list_filter = ["plan_type", "status", "cancel_at_period_end"]
    search_fields = ["user__email", "external_customer_id", "external_subscription_id"]
    ordering = ["-updated_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status and a replay action
    for failed events. Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "stripe_event_id",
        "event_type",
        "payload",
        "processed_at",
        "retry_count",
        "error_message",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["replay_events"]

    fieldsets = (
        (None, {"fields": ("id", "stripe_event_id", "event_type", "status")}),
        ("Processing", {"fields": ("processed_at", "retry_count", "error_message")}),
        ("Payload", {"fields": ("payload",), "classes": ("collapse",)}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    @admin.action(description="Replay selected events")
    def replay_events(self, request, queryset):
        from billing.tasks import process_webhook_event

        queued = 0
        for webhook_event in queryset.exclude(status="processed"):
            process_webhook_event.delay(str(webhook_event.id))
            queued += 1
        self.message_user(request, f"Queued {queued} event(s) for replay.")

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        return False
