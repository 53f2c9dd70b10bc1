from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from ..models import DeletionFeedback, NewOrder, Order, PaymentRecord, User


class UserRepository(Protocol):
    """Lookup and field-scoped updates on user records."""

    def create_user(
        self,
        email: str,
        customer_id: Optional[str],
        default_payment_method_id: Optional[str] = None,
    ) -> User:
        ...

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        ...

    def get_user_by_customer_id(self, customer_id: str) -> Optional[User]:
        ...

    def delete_user(self, user_id: int) -> None:
        ...

    def set_default_payment_method(self, user_id: int, payment_method_id: Optional[str]) -> None:
        ...

    def replace_default_payment_method(
        self,
        user_id: int,
        current_id: str,
        replacement_id: Optional[str],
    ) -> bool:
        ...


class SubscriptionRepository(Protocol):
    """Field-scoped writes of the subscription descriptor embedded in a user."""

    def set_subscription(
        self,
        user_id: int,
        *,
        subscription_id: str,
        status: Optional[str],
        current_period_end: Optional[datetime],
        price_id: Optional[str] = None,
        cancel_at_period_end: Optional[bool] = None,
        billing: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...

    def update_subscription_if_current(
        self,
        user_id: int,
        subscription_id: str,
        *,
        status: Optional[str] = None,
        current_period_end: Optional[datetime] = None,
        cancel_at_period_end: Optional[bool] = None,
        price_id: Optional[str] = None,
        billing: Optional[Dict[str, Any]] = None,
        allow_unset: bool = False,
        require_status: Optional[str] = None,
        exclude_status: Optional[str] = None,
    ) -> bool:
        ...


class LedgerRepository(Protocol):
    """Append-only payment history."""

    def append_payment(
        self,
        user_id: int,
        *,
        payment_intent_id: Optional[str],
        amount: int,
        currency: str,
        status: str,
        invoice_id: Optional[str] = None,
        error_message: Optional[str] = None,
        payment_method_id: Optional[str] = None,
        payment_method_last4: Optional[str] = None,
        order_ref: Optional[str] = None,
        subscription_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> bool:
        ...

    def has_payment_intent(self, user_id: int, payment_intent_id: str) -> bool:
        ...

    def has_invoice(self, user_id: int, invoice_id: str) -> bool:
        ...

    def get_payment_history(self, user_id: int) -> List[PaymentRecord]:
        ...

    def get_payment(self, user_id: int, record_id: int) -> Optional[PaymentRecord]:
        ...

    def get_payment_by_intent(self, user_id: int, payment_intent_id: str) -> Optional[PaymentRecord]:
        ...


class OrderRepository(Protocol):
    """Orders keyed by (user, order reference)."""

    def insert_order(self, user_id: int, order: NewOrder, status: str, payment_status: str) -> bool:
        ...

    def get_order(self, user_id: int, order_ref: str) -> Optional[Order]:
        ...

    def list_orders(self, user_id: int) -> List[Order]:
        ...

    def transition_order(
        self,
        user_id: int,
        order_ref: str,
        status: str,
        payment_status: str,
        updated_at: datetime,
    ) -> bool:
        ...


class FeedbackRepository(Protocol):
    def record_deletion_feedback(self, reason: str, had_subscription: bool, email: str) -> DeletionFeedback:
        ...


class PersistenceGateway(
    UserRepository,
    SubscriptionRepository,
    LedgerRepository,
    OrderRepository,
    FeedbackRepository,
    Protocol,
):
    """Composite gateway combining every persistence concern used by the app."""

    def close(self) -> None:
        ...
