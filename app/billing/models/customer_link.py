"""
CustomerLink model mapping users to gateway customers.

Created on a user's first checkout (by the customer resolver) or on the first
webhook that names an unseen customer. Never deleted; the gateway customer
outlives any individual subscription.

Usage:
    from billing.models import CustomerLink

    link = CustomerLink.objects.filter(user=user).first()
    customer_id = link.external_customer_id if link else None
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel


class CustomerLink(BaseModel):
    """
    One-to-one mapping between a user and a Stripe customer.

    Fields:
        user: The application user (unique)
        external_customer_id: Stripe Customer ID (cus_xxx) (unique)
        email: Email the customer was created with
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="billing_customer",
        help_text="User this gateway customer belongs to",
    )

    external_customer_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )

    email = models.EmailField(
        blank=True,
        default="",
        help_text="Email the gateway customer was created with",
    )

    class Meta:
        db_table = "billing_customer_link"
        ordering = ["-created_at"]
        verbose_name = "Customer Link"
        verbose_name_plural = "Customer Links"

    def __str__(self) -> str:
        return f"CustomerLink({self.user_id} -> {self.external_customer_id})"
