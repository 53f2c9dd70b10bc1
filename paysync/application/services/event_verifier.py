from __future__ import annotations

import json
import logging
from typing import Optional

import stripe

from ...domain.exceptions import ConfigurationError, InvalidSignature, MalformedEvent
from ...domain.models import Event
from ...domain.models.events import parse_event, type_name

logger = logging.getLogger(__name__)


class EventVerifier:
    """Authenticates raw webhook deliveries and decodes them into typed events.

    The payload must be the exact bytes received on the wire; any re-encoding
    before this point breaks the signature.
    """

    def __init__(self, webhook_secret: Optional[str], tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE) -> None:
        self._secret = webhook_secret
        self._tolerance = tolerance

    def verify(self, payload: bytes, signature: Optional[str]) -> Event:
        if not self._secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not configured")
            raise ConfigurationError("Webhook secret not configured")
        if not signature:
            raise InvalidSignature("No Stripe signature")

        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidSignature("Payload is not valid UTF-8") from exc

        try:
            stripe.WebhookSignature.verify_header(text, signature, self._secret, self._tolerance)
        except stripe.SignatureVerificationError as exc:
            raise InvalidSignature(str(exc)) from exc

        try:
            raw = json.loads(text)
            event = parse_event(raw)
        except (ValueError, KeyError, TypeError) as exc:
            raise MalformedEvent(f"Malformed event payload: {exc}") from exc

        logger.info("Webhook verified: %s (%s)", type_name(event), event.id)
        return event
