"""
CouponRecord model for discount codes redeemable at checkout.

Codes are stored upper-case; lookups normalize the user's input the same way.
used_count is only ever changed through conditional UPDATE statements in
billing.services.coupon_redeemer, never by read-modify-write on an instance,
so concurrent checkouts cannot push it past usage_limit.

Usage:
    from billing.models import CouponRecord
    from billing.state_machines import DiscountType

    CouponRecord.objects.create(
        code="SAVE20",
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal("20"),
        usage_limit=100,
    )
"""

from __future__ import annotations

from datetime import datetime

from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from core.models import BaseModel

from billing.state_machines import DiscountType


class CouponRecord(BaseModel):
    """
    A discount code with an optional expiry and usage quota.

    Fields:
        code: Unique code, stored upper-case; also the gateway coupon id
        discount_type: Percentage or fixed amount
        discount_value: Percent off, or amount off in major currency units
        usage_limit: Maximum redemptions (null = unlimited)
        used_count: Redemptions so far
        expires_at: Redemption cut-off (null = never expires)
        is_active: Inactive coupons are treated as if they did not exist
    """

    code = models.CharField(
        max_length=64,
        unique=True,
        help_text="Coupon code (stored upper-case)",
    )

    discount_type = models.CharField(
        max_length=20,
        choices=DiscountType.choices,
        help_text="Whether discount_value is a percentage or a fixed amount",
    )

    discount_value = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text="Percent off (0-100) or amount off in major currency units",
    )

    usage_limit = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Maximum number of redemptions; empty for unlimited",
    )

    used_count = models.PositiveIntegerField(
        default=0,
        help_text="Number of redemptions so far",
    )

    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Coupon cannot be redeemed at or after this time",
    )

    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Inactive coupons are not applicable at checkout",
    )

    class Meta:
        db_table = "billing_coupon"
        ordering = ["-created_at"]
        verbose_name = "Coupon"
        verbose_name_plural = "Coupons"
        constraints = [
            models.CheckConstraint(
                condition=Q(usage_limit__isnull=True)
                | Q(used_count__lte=F("usage_limit")),
                name="billing_coupon_used_within_limit",
            ),
            models.CheckConstraint(
                condition=Q(discount_value__gt=0),
                name="billing_coupon_positive_discount",
            ),
        ]

    def __str__(self) -> str:
        return f"Coupon({self.code})"

    def save(self, *args, **kwargs) -> None:
        self.code = (self.code or "").strip().upper()
        super().save(*args, **kwargs)

    def is_expired(self, at: datetime | None = None) -> bool:
        """Check whether the coupon's expiry has passed at the given time."""
        if self.expires_at is None:
            return False
        return self.expires_at <= (at or timezone.now())

    @property
    def is_exhausted(self) -> bool:
        """Check whether the usage quota has been consumed."""
        return self.usage_limit is not None and self.used_count >= self.usage_limit

    @property
    def remaining_uses(self) -> int | None:
        """Redemptions left, or None for unlimited coupons."""
        if self.usage_limit is None:
            return None
        return max(self.usage_limit - self.used_count, 0)
