from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol


class PaymentProcessor(Protocol):
    """Stripe capabilities consumed by the reconciliation core.

    Every call is synchronous and may raise ``ProcessorUnavailable``.
    Objects are returned as plain dictionaries shaped like Stripe's API.
    """

    def retrieve_payment_method(self, payment_method_id: str) -> Dict[str, Any]:
        ...

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        ...

    def retrieve_price(self, price_id: str) -> Dict[str, Any]:
        ...

    def list_payment_methods(self, customer_id: str) -> List[Dict[str, Any]]:
        ...

    def attach_payment_method(self, payment_method_id: str, customer_id: str) -> Dict[str, Any]:
        ...

    def update_payment_method(self, payment_method_id: str, **params: Any) -> Dict[str, Any]:
        ...

    def detach_payment_method(self, payment_method_id: str) -> Dict[str, Any]:
        ...

    def set_customer_default_payment_method(self, customer_id: str, payment_method_id: Optional[str]) -> None:
        ...

    def list_invoices(
        self,
        customer_id: str,
        *,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        ...

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
        ...

    def create_subscription(
        self,
        *,
        customer_id: str,
        price_id: str,
        payment_method_id: str,
        metadata: Dict[str, str],
        trial_end: Optional[int] = None,
    ) -> Dict[str, Any]:
        ...

    def update_subscription(self, subscription_id: str, **params: Any) -> Dict[str, Any]:
        ...

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        ...

    def delete_customer(self, customer_id: str) -> None:
        ...
