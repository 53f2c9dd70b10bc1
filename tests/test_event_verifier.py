import time

import pytest

from paysync.application.services.event_verifier import EventVerifier
from paysync.domain.exceptions import ConfigurationError, InvalidSignature, MalformedEvent
from paysync.domain.models import PaymentIntentEvent

from conftest import WEBHOOK_SECRET, encode_payload, make_event, payment_intent_object, sign_payload


@pytest.fixture
def verifier() -> EventVerifier:
    return EventVerifier(WEBHOOK_SECRET, tolerance=300)


@pytest.fixture
def payload() -> bytes:
    return encode_payload(make_event("payment_intent.succeeded", payment_intent_object()))


def test_valid_signature_yields_typed_event(verifier, payload):
    event = verifier.verify(payload, sign_payload(payload))

    assert isinstance(event, PaymentIntentEvent)
    assert event.payment_intent_id == "pi_test_1"


def test_tampered_body_is_rejected(verifier, payload):
    header = sign_payload(payload)
    tampered = payload.replace(b"2599", b"1")

    with pytest.raises(InvalidSignature):
        verifier.verify(tampered, header)


def test_missing_signature_is_rejected(verifier, payload):
    with pytest.raises(InvalidSignature):
        verifier.verify(payload, None)


def test_wrong_secret_is_rejected(verifier, payload):
    with pytest.raises(InvalidSignature):
        verifier.verify(payload, sign_payload(payload, secret="whsec_other"))


def test_malformed_header_is_rejected(verifier, payload):
    with pytest.raises(InvalidSignature):
        verifier.verify(payload, "not-a-signature")


def test_stale_timestamp_is_rejected(verifier, payload):
    header = sign_payload(payload, timestamp=int(time.time()) - 3600)

    with pytest.raises(InvalidSignature):
        verifier.verify(payload, header)


def test_missing_secret_is_a_configuration_error(payload):
    with pytest.raises(ConfigurationError):
        EventVerifier(None).verify(payload, sign_payload(payload))


def test_signed_non_json_is_malformed(verifier):
    body = b"definitely not json"

    with pytest.raises(MalformedEvent):
        verifier.verify(body, sign_payload(body))


def test_signed_event_without_data_is_malformed(verifier):
    body = b'{"id": "evt_1", "type": "payment_intent.succeeded"}'

    with pytest.raises(MalformedEvent):
        verifier.verify(body, sign_payload(body))
