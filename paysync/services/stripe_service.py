"""Stripe payment integration service."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import stripe

from ..domain.exceptions import PaymentDeclined, ProcessorUnavailable

logger = logging.getLogger(__name__)


class StripeService:
    """Wraps an injected ``stripe.StripeClient`` behind the processor port.

    Card declines surface as ``PaymentDeclined``; every other Stripe failure
    (network, auth, rate limit, invalid request) surfaces as
    ``ProcessorUnavailable`` so callers can decide whether to degrade.
    """

    def __init__(self, client: Optional[stripe.StripeClient]) -> None:
        self._client = client

    @classmethod
    def from_api_key(cls, api_key: Optional[str]) -> "StripeService":
        if not api_key:
            logger.warning("STRIPE_SECRET_KEY not set; Stripe calls will fail until configured")
            return cls(None)
        return cls(stripe.StripeClient(api_key))

    @property
    def client(self) -> stripe.StripeClient:
        if self._client is None:
            raise ProcessorUnavailable("Stripe not configured. Please set STRIPE_SECRET_KEY first.")
        return self._client

    def is_configured(self) -> bool:
        return self._client is not None

    def retrieve_payment_method(self, payment_method_id: str) -> Dict[str, Any]:
        return self._call(
            "retrieve payment method",
            lambda: self.client.payment_methods.retrieve(payment_method_id),
        )

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._call(
            "retrieve subscription",
            lambda: self.client.subscriptions.retrieve(subscription_id),
        )

    def retrieve_price(self, price_id: str) -> Dict[str, Any]:
        return self._call(
            "retrieve price",
            lambda: self.client.prices.retrieve(price_id, {"expand": ["product"]}),
        )

    def list_payment_methods(self, customer_id: str) -> List[Dict[str, Any]]:
        result = self._call(
            "list payment methods",
            lambda: self.client.payment_methods.list({"customer": customer_id, "type": "card"}),
        )
        return list(result.data)

    def attach_payment_method(self, payment_method_id: str, customer_id: str) -> Dict[str, Any]:
        return self._call(
            "attach payment method",
            lambda: self.client.payment_methods.attach(payment_method_id, {"customer": customer_id}),
        )

    def update_payment_method(self, payment_method_id: str, **params: Any) -> Dict[str, Any]:
        return self._call(
            "update payment method",
            lambda: self.client.payment_methods.update(payment_method_id, params),
        )

    def detach_payment_method(self, payment_method_id: str) -> Dict[str, Any]:
        return self._call(
            "detach payment method",
            lambda: self.client.payment_methods.detach(payment_method_id),
        )

    def set_customer_default_payment_method(self, customer_id: str, payment_method_id: Optional[str]) -> None:
        # An empty string unsets the field on the customer
        self._call(
            "update customer",
            lambda: self.client.customers.update(
                customer_id,
                {"invoice_settings": {"default_payment_method": payment_method_id or ""}},
            ),
        )

    def list_invoices(
        self,
        customer_id: str,
        *,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"customer": customer_id, "limit": limit}
        if status:
            params["status"] = status
        result = self._call("list invoices", lambda: self.client.invoices.list(params))
        return list(result.data)

    def create_payment_intent(
        self,
        *,
        amount: int,
        currency: str,
        customer_id: str,
        payment_method_id: str,
        metadata: Dict[str, str],
        description: Optional[str] = None,
        receipt_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "amount": amount,
            "currency": currency,
            "customer": customer_id,
            "payment_method": payment_method_id,
            "confirm": True,
            "metadata": metadata,
            # Card only, so confirmation never needs a redirect
            "payment_method_types": ["card"],
            "expand": ["latest_charge"],
        }
        if description:
            params["description"] = description
        if receipt_email:
            params["receipt_email"] = receipt_email
        return self._call("create payment intent", lambda: self.client.payment_intents.create(params))

    def create_subscription(
        self,
        *,
        customer_id: str,
        price_id: str,
        payment_method_id: str,
        metadata: Dict[str, str],
        trial_end: Optional[int] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "default_payment_method": payment_method_id,
            "expand": ["latest_invoice.payment_intent"],
            "metadata": metadata,
        }
        if trial_end:
            params["trial_end"] = trial_end
        return self._call("create subscription", lambda: self.client.subscriptions.create(params))

    def update_subscription(self, subscription_id: str, **params: Any) -> Dict[str, Any]:
        return self._call(
            "update subscription",
            lambda: self.client.subscriptions.update(subscription_id, params),
        )

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._call(
            "cancel subscription",
            lambda: self.client.subscriptions.cancel(subscription_id),
        )

    def delete_customer(self, customer_id: str) -> None:
        self._call("delete customer", lambda: self.client.customers.delete(customer_id))

    @staticmethod
    def _call(action: str, operation):
        try:
            return operation()
        except stripe.CardError as exc:
            logger.info("Stripe declined card during %s: %s", action, exc.user_message or str(exc))
            raise PaymentDeclined(
                exc.user_message or "Payment method declined",
                details={"code": exc.code, "decline_code": getattr(exc, "decline_code", None)},
            ) from exc
        except stripe.StripeError as exc:
            logger.error("Failed to %s: %s", action, str(exc))
            raise ProcessorUnavailable(f"Failed to {action}: {str(exc)}") from exc
