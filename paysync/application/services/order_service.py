"""Order lifecycle: pending until a payment outcome moves it to a terminal state."""

from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timezone
from typing import List, Optional

from ...domain.exceptions import OrderNotFound
from ...domain.models import NewOrder, Order, OrderStatus
from ...domain.ports.persistence import OrderRepository

logger = logging.getLogger(__name__)

_ORDER_STATUSES = frozenset(status.value for status in OrderStatus)

# Stripe payment intent status -> order status reached by that outcome
_PAYMENT_OUTCOMES = {
    "succeeded": OrderStatus.COMPLETED.value,
    "canceled": OrderStatus.CANCELED.value,
    "requires_payment_method": OrderStatus.FAILED.value,
    "failed": OrderStatus.FAILED.value,
}


class OrderService:
    """Owns every order status transition.

    Both the synchronous checkout response and asynchronous webhook events go
    through ``apply_outcome`` so the transition rules cannot diverge.
    """

    def __init__(self, orders: OrderRepository) -> None:
        self._orders = orders

    @staticmethod
    def generate_order_ref() -> str:
        """Create an unpredictable order reference."""
        return f"order_{int(time.time() * 1000)}_{secrets.token_hex(8)}"

    @staticmethod
    def status_for_payment(payment_status: Optional[str]) -> str:
        """Order status implied by a Stripe payment intent status."""
        return _PAYMENT_OUTCOMES.get(payment_status or "", OrderStatus.PENDING.value)

    def create_order(self, user_id: int, order: NewOrder, payment_status: str) -> Order:
        """
        Record a new pending order.

        Inserting the same order reference twice keeps the first row.

        Args:
            user_id: Owner of the order
            order: Order snapshot taken at checkout
            payment_status: Stripe payment intent status at creation time

        Returns:
            The stored Order
        """
        created = self._orders.insert_order(
            user_id, order, status=OrderStatus.PENDING.value, payment_status=payment_status
        )
        if created:
            logger.info("Order %s saved for user %s", order.order_ref, user_id)
        else:
            logger.info("Order %s already exists for user %s", order.order_ref, user_id)
        stored = self._orders.get_order(user_id, order.order_ref)
        if stored is None:
            raise OrderNotFound(f"Order {order.order_ref} not found after insert")
        return stored

    def apply_outcome(
        self,
        user_id: int,
        order_ref: str,
        outcome_status: str,
        payment_status: str,
    ) -> bool:
        """
        Advance an order in response to a payment outcome.

        Args:
            user_id: Owner of the order
            order_ref: Application-generated order reference
            outcome_status: Target order status
            payment_status: Stripe payment intent status to mirror

        Returns:
            True if the order was updated, False if it was already terminal

        Raises:
            OrderNotFound: If the user has no order with that reference
            ValueError: If outcome_status is not an order status
        """
        if outcome_status not in _ORDER_STATUSES:
            raise ValueError(f"Unknown order status: {outcome_status}")

        order = self._orders.get_order(user_id, order_ref)
        if order is None:
            raise OrderNotFound(
                f"Order {order_ref} not found for user {user_id}",
                details={"user_id": user_id, "order_ref": order_ref},
            )
        if order.is_terminal():
            logger.info(
                "Order %s already %s; ignoring %s/%s",
                order_ref,
                order.status,
                outcome_status,
                payment_status,
            )
            return False

        updated = self._orders.transition_order(
            user_id,
            order_ref,
            status=outcome_status,
            payment_status=payment_status,
            updated_at=datetime.now(timezone.utc),
        )
        if updated:
            logger.info("Updated order %s status to %s (%s)", order_ref, outcome_status, payment_status)
        else:
            logger.info("Order %s reached a terminal state concurrently; skipped %s", order_ref, outcome_status)
        return updated

    def get_order(self, user_id: int, order_ref: str) -> Order:
        order = self._orders.get_order(user_id, order_ref)
        if order is None:
            raise OrderNotFound(f"Order {order_ref} not found for user {user_id}")
        return order

    def list_orders(self, user_id: int) -> List[Order]:
        return self._orders.list_orders(user_id)
