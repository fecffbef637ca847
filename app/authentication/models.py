"""
Authentication models.

- User: Email-identified account that owns a billing customer and a
  subscription record

Billing identifies the paying user by this model's primary key, stamped on
gateway metadata as user_id. When a notification arrives without that
metadata the user is looked up by email, so emails are unique regardless of
case.

Related files:
    - managers.py: Account creation and the case-insensitive email lookup
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models
from django.db.models.functions import Lower

from authentication.managers import UserManager


class User(AbstractBaseUser, PermissionsMixin):
    """
    Account model keyed by email.

    Fields:
        email: Login identifier; also sent to the gateway as customer email
        is_active: Inactive accounts cannot log in or be matched by email
        is_staff: Grants access to the billing admin
        date_joined: Account creation time
        updated_at: Last modification time

    Related objects (billing app):
        billing_customer: CustomerLink to the gateway customer, if any
        subscription_record: SubscriptionRecord, absent on the implicit free plan
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="Login email; also the gateway customer email",
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Inactive accounts cannot log in and are skipped by email lookups",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Grants access to the billing admin",
    )
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="Account creation time",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Last modification time",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]
        constraints = [
            # Email fallback in webhook handling must match at most one account
            models.UniqueConstraint(
                Lower("email"),
                name="authentication_user_email_ci_unique",
            ),
        ]

    def __str__(self):
        return self.email
