"""
Customer resolution: one gateway customer per user.

Usage:
    from billing.services import CustomerResolver

    customer_id = CustomerResolver.resolve(user)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import DatabaseError, IntegrityError, transaction

from core.services import BaseService

from billing.adapters import IdempotencyKeyGenerator, StripeAdapter
from billing.models import CustomerLink

if TYPE_CHECKING:
    from authentication.models import User


class CustomerResolver(BaseService):
    """Finds or creates the Stripe customer for a user."""

    @classmethod
    def get_customer_id(cls, user: User) -> str | None:
        link = CustomerLink.objects.filter(user=user).only("external_customer_id").first()
        return link.external_customer_id if link else None

    @classmethod
    def resolve(cls, user: User) -> str:
        """
        Return the user's gateway customer id, creating the customer if needed.

        The gateway call carries an idempotency key derived from the user id,
        so a retry after a timeout returns the same customer.

        If the link cannot be stored after the customer was created, the
        error is logged for repair and the new id is still returned; the
        checkout in progress must not fail because of the mirror write.

        Raises:
            StripeError: Customer creation failed at the gateway
        """
        logger = cls.get_logger()

        existing = cls.get_customer_id(user)
        if existing:
            return existing

        customer = StripeAdapter.create_customer(
            email=user.email,
            user_id=str(user.pk),
            idempotency_key=IdempotencyKeyGenerator.generate("create_customer", user.pk),
        )

        try:
            with transaction.atomic():
                CustomerLink.objects.create(
                    user=user,
                    external_customer_id=customer.id,
                    email=user.email,
                )
        except (IntegrityError, DatabaseError):
            logger.error(
                "Failed to store customer link after gateway customer creation",
                extra={"user_id": user.pk, "customer_id": customer.id},
                exc_info=True,
            )
            return customer.id

        logger.info(
            "Created gateway customer",
            extra={"user_id": user.pk, "customer_id": customer.id},
        )
        return customer.id

    @classmethod
    def upsert_link(
        cls,
        user: User,
        external_customer_id: str,
        email: str | None = None,
    ) -> CustomerLink | None:
        """
        Create or update the user's link from a gateway event.

        Failures are logged and swallowed; the subscription write that
        follows does not depend on the link.
        """
        if not external_customer_id:
            return None

        try:
            with transaction.atomic():
                link, created = CustomerLink.objects.update_or_create(
                    user=user,
                    defaults={
                        "external_customer_id": external_customer_id,
                        "email": email or user.email,
                    },
                )
        except (IntegrityError, DatabaseError):
            cls.get_logger().error(
                "Failed to upsert customer link",
                extra={"user_id": user.pk, "customer_id": external_customer_id},
                exc_info=True,
            )
            return None

        if created:
            cls.get_logger().info(
                "Linked gateway customer from event",
                extra={"user_id": user.pk, "customer_id": external_customer_id},
            )
        return link
