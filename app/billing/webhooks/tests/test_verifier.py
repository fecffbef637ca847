"""
Tests for EventVerifier.

Signatures are produced with the same HMAC-SHA256 scheme Stripe uses and
checked by the real stripe SDK primitive; nothing is mocked except where a
test asserts that parsing never happens.
"""

import json
import time
from unittest.mock import patch

import pytest

from core.exceptions import ConfigurationError, ValidationError

from billing.exceptions import InvalidSignatureError
from billing.tests.factories import encode, sign_payload, subscription_event
from billing.webhooks.verifier import EventVerifier


@pytest.fixture
def body():
    return encode(subscription_event("customer.subscription.updated"))


class TestValidSignature:
    def test_returns_parsed_event(self, body, webhook_secret):
        event = EventVerifier.verify(body, sign_payload(body, webhook_secret))

        assert event.event_id == "evt_sub_1"
        assert event.type == "customer.subscription.updated"
        assert event.data_object["id"] == "sub_test_1"
        assert event.payload == json.loads(body)

    def test_accepts_created_at_instead_of_created(self, webhook_secret):
        payload = subscription_event("customer.subscription.updated")
        payload["created_at"] = payload.pop("created")
        body = encode(payload)

        event = EventVerifier.verify(body, sign_payload(body, webhook_secret))

        assert event.created_at.timestamp() == payload["created_at"]


class TestRejectedDeliveries:
    def test_every_single_byte_body_mutation_is_rejected(self, body, webhook_secret):
        header = sign_payload(body, webhook_secret)

        for index in range(len(body)):
            mutated = bytearray(body)
            mutated[index] ^= 0x01
            with pytest.raises(InvalidSignatureError):
                EventVerifier.verify(bytes(mutated), header)

    def test_every_single_character_signature_mutation_is_rejected(
        self, body, webhook_secret
    ):
        header = sign_payload(body, webhook_secret)

        for index in range(len(header)):
            mutated = header[:index] + chr(ord(header[index]) ^ 0x01) + header[index + 1 :]
            with pytest.raises(InvalidSignatureError):
                EventVerifier.verify(body, mutated)

    def test_rejection_happens_before_parsing(self, body, webhook_secret):
        header = sign_payload(body + b" ", webhook_secret)

        with patch("billing.webhooks.verifier.json.loads") as mock_loads:
            with pytest.raises(InvalidSignatureError):
                EventVerifier.verify(body, header)

        mock_loads.assert_not_called()

    def test_wrong_secret_is_rejected(self, body):
        with pytest.raises(InvalidSignatureError):
            EventVerifier.verify(body, sign_payload(body, "whsec_other"))

    @pytest.mark.parametrize("header", [None, ""])
    def test_missing_signature_is_rejected(self, body, header):
        with pytest.raises(InvalidSignatureError) as exc_info:
            EventVerifier.verify(body, header)

        assert exc_info.value.error_code == "MISSING_SIGNATURE"
        assert exc_info.value.http_status == 400

    def test_non_utf8_body_is_rejected(self, webhook_secret):
        body = b'{"id": "evt_1", "type": "x", "created": 1, "name": "\xff\xfe"}'

        with pytest.raises(InvalidSignatureError):
            EventVerifier.verify(body, "t=1,v1=deadbeef")

    def test_expired_timestamp_is_rejected(self, body, webhook_secret):
        header = sign_payload(body, webhook_secret, timestamp=int(time.time()) - 3600)

        with pytest.raises(InvalidSignatureError):
            EventVerifier.verify(body, header)

    def test_garbage_header_is_rejected(self, body):
        with pytest.raises(InvalidSignatureError):
            EventVerifier.verify(body, "not-a-signature")


class TestMalformedSignedPayloads:
    def test_invalid_json_is_a_validation_error(self, webhook_secret):
        body = b"{not json"

        with pytest.raises(ValidationError) as exc_info:
            EventVerifier.verify(body, sign_payload(body, webhook_secret))

        assert exc_info.value.error_code == "INVALID_WEBHOOK_PAYLOAD"

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"type": "customer.subscription.updated", "created": 1},
            {"id": "evt_1", "created": 1},
            {"id": "evt_1", "type": "customer.subscription.updated"},
        ],
    )
    def test_incomplete_envelope_is_a_validation_error(self, webhook_secret, payload):
        body = encode(payload)

        with pytest.raises(ValidationError) as exc_info:
            EventVerifier.verify(body, sign_payload(body, webhook_secret))

        assert exc_info.value.error_code == "INVALID_WEBHOOK_PAYLOAD"


class TestConfiguration:
    def test_missing_secret_is_configuration_error(self, body, settings):
        settings.STRIPE_WEBHOOK_SECRET = ""

        with pytest.raises(ConfigurationError):
            EventVerifier.verify(body, "t=1,v1=abc")
