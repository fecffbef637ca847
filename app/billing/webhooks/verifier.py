"""
Authentication and parsing of inbound gateway events.

Nothing in the payload is trusted, or even parsed, before the signature has
been checked against the exact bytes received. A body that is not valid
UTF-8 cannot be what the gateway signed and is rejected the same way as a
MAC mismatch.

Usage:
    from billing.webhooks.verifier import EventVerifier

    event = EventVerifier.verify(request.body, request.headers.get("Stripe-Signature"))
"""

from __future__ import annotations

import json
import logging

from django.conf import settings

from core.exceptions import ConfigurationError, ValidationError

from billing.adapters import StripeAdapter
from billing.exceptions import InvalidSignatureError
from billing.types import InboundEvent


logger = logging.getLogger(__name__)


class EventVerifier:
    """Verifies Stripe-Signature headers and builds InboundEvents."""

    @staticmethod
    def verify(payload: bytes, signature: str | None) -> InboundEvent:
        """
        Authenticate a delivery and return the event it carries.

        Args:
            payload: Raw request body, exactly as received
            signature: Value of the Stripe-Signature header

        Raises:
            ConfigurationError: STRIPE_WEBHOOK_SECRET is not set
            InvalidSignatureError: Header missing, body altered, or MAC mismatch
            ValidationError: Signed body is not a well-formed event
        """
        secret = settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            logger.critical("STRIPE_WEBHOOK_SECRET is not configured")
            raise ConfigurationError(
                "Webhook secret is not configured",
                error_code="WEBHOOK_SECRET_NOT_CONFIGURED",
            )

        if not signature:
            logger.warning("Webhook received without Stripe-Signature header")
            raise InvalidSignatureError(
                "Missing signature",
                error_code="MISSING_SIGNATURE",
            )

        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning("Webhook body is not valid UTF-8")
            raise InvalidSignatureError("Invalid signature") from e

        StripeAdapter.verify_webhook_signature(
            text,
            signature,
            secret,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )

        try:
            data = json.loads(text)
        except ValueError as e:
            logger.warning("Signed webhook body is not valid JSON")
            raise ValidationError(
                "Event payload is not valid JSON",
                error_code="INVALID_WEBHOOK_PAYLOAD",
            ) from e

        return InboundEvent.from_payload(data)
