"""
Coupon redemption with an atomic, race-free usage quota.

The quota check and the increment are one conditional UPDATE:

    UPDATE billing_coupon
       SET used_count = used_count + 1
     WHERE code = %s AND is_active
       AND (expires_at IS NULL OR expires_at > now)
       AND (usage_limit IS NULL OR used_count < usage_limit)

The database serialises concurrent updates of the same row, so with
usage_limit=N at most N redemptions ever succeed, whatever the number of
concurrent checkouts. A read-check-then-write sequence would not give that.

Usage:
    from billing.services import CouponRedeemer

    terms = CouponRedeemer.redeem("save20")
    if terms is None:
        ...  # code not applicable, continue without discount
"""

from __future__ import annotations

from django.db import DatabaseError
from django.db.models import F, Q
from django.utils import timezone

from core.services import BaseService

from billing.exceptions import ExpiredCouponError, RedemptionLimitExceededError
from billing.models import CouponRecord
from billing.types import DiscountTerms


class CouponRedeemer(BaseService):
    """Validates coupon codes and consumes one use per successful checkout."""

    @staticmethod
    def normalize_code(code: str | None) -> str:
        return (code or "").strip().upper()

    @classmethod
    def redeem(cls, code: str | None) -> DiscountTerms | None:
        """
        Validate a coupon and consume one use of its quota.

        Args:
            code: Coupon code as typed by the user (any case, may be padded)

        Returns:
            DiscountTerms when the use was consumed; None when the code is
            blank, unknown, or inactive (checkout continues without discount)

        Raises:
            ExpiredCouponError: The coupon's expiry has passed
            RedemptionLimitExceededError: The usage quota is exhausted
        """
        logger = cls.get_logger()
        normalized = cls.normalize_code(code)
        if not normalized:
            return None

        now = timezone.now()
        updated = (
            CouponRecord.objects.filter(code=normalized, is_active=True)
            .filter(Q(expires_at__isnull=True) | Q(expires_at__gt=now))
            .filter(Q(usage_limit__isnull=True) | Q(used_count__lt=F("usage_limit")))
            .update(used_count=F("used_count") + 1, updated_at=now)
        )

        coupon = CouponRecord.objects.filter(code=normalized).first()

        if updated:
            logger.info(
                "Coupon redeemed",
                extra={
                    "coupon_code": normalized,
                    "used_count": coupon.used_count if coupon else None,
                },
            )
            if coupon is None:
                # Deleted between the update and the read; the use is spent
                return None
            return DiscountTerms(
                code=coupon.code,
                discount_type=coupon.discount_type,
                discount_value=coupon.discount_value,
            )

        if coupon is None or not coupon.is_active:
            logger.info(
                "Coupon not applicable",
                extra={"coupon_code": normalized, "found": coupon is not None},
            )
            return None

        if coupon.is_expired(now):
            logger.info("Coupon expired", extra={"coupon_code": normalized})
            raise ExpiredCouponError(
                "Coupon has expired",
                details={"code": normalized},
            )

        if coupon.is_exhausted:
            logger.info(
                "Coupon usage limit reached",
                extra={
                    "coupon_code": normalized,
                    "usage_limit": coupon.usage_limit,
                },
            )
            raise RedemptionLimitExceededError(
                "Coupon usage limit reached",
                details={"code": normalized},
            )

        # Row changed between the update and the read (e.g. limit raised)
        logger.warning(
            "Coupon redemption matched no row but coupon looks redeemable",
            extra={"coupon_code": normalized},
        )
        return None

    @classmethod
    def release(cls, code: str | None) -> bool:
        """
        Give back one use consumed by redeem().

        Only called when checkout fails at the gateway after redemption.
        Best effort: a failure is logged and never raised, so it cannot mask
        the gateway error the caller is about to re-raise.

        Returns:
            True if a use was returned
        """
        logger = cls.get_logger()
        normalized = cls.normalize_code(code)
        if not normalized:
            return False

        try:
            released = CouponRecord.objects.filter(
                code=normalized,
                used_count__gt=0,
            ).update(used_count=F("used_count") - 1, updated_at=timezone.now())
        except DatabaseError:
            logger.error(
                "Failed to release coupon use",
                extra={"coupon_code": normalized},
                exc_info=True,
            )
            return False

        logger.info(
            "Coupon use released",
            extra={"coupon_code": normalized, "released": bool(released)},
        )
        return bool(released)
