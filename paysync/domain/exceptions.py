"""Errors raised by the reconciliation core.

Verification errors (``InvalidSignature``, ``MalformedEvent``,
``ConfigurationError``) reject a delivery before any state is touched.
Resolution misses (``UserNotFound``, ``OrderNotFound``) are logged and the
event is still acknowledged. ``ProcessorUnavailable`` marks a failed call to
Stripe; enrichment steps degrade instead of aborting.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ReconciliationError(Exception):
    """Base class for every error raised by paysync."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(ReconciliationError):
    pass


class InvalidSignature(ReconciliationError):
    pass


class MalformedEvent(ReconciliationError):
    pass


class UserNotFound(ReconciliationError):
    pass


class OrderNotFound(ReconciliationError):
    pass


class ProcessorUnavailable(ReconciliationError):
    pass


class PaymentDeclined(ReconciliationError):
    pass


class PaymentMethodNotOwned(ReconciliationError):
    pass


class SubscriptionError(ReconciliationError):
    """A subscription request that cannot be honoured in the user's current state."""


class PaymentMethodError(ReconciliationError):
    """A card request that cannot be honoured, e.g. the user has no Stripe customer."""
