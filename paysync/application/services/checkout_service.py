"""Synchronous checkout: price a cart, charge it and record the order."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Sequence

from ...domain.exceptions import PaymentMethodNotOwned, UserNotFound
from ...domain.models import Address, CartItem, NewOrder, OrderItem, PaymentStatus, User
from ...domain.models.events import object_id
from ...domain.ports.persistence import UserRepository
from ...domain.ports.processor import PaymentProcessor
from .ledger_service import LedgerService
from .order_service import OrderService

logger = logging.getLogger(__name__)

_LEDGER_STATUSES = frozenset(status.value for status in PaymentStatus)
_CENTS = Decimal("100")


def to_minor_units(price: Decimal) -> int:
    """Convert a major-unit price to an integer amount of cents."""
    return int((Decimal(price) * _CENTS).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class CheckoutService:
    """Places orders paid with a saved card.

    The order is stored pending and then driven by the payment intent status
    through ``OrderService.apply_outcome``, the same transition webhook events
    use, so the two paths converge on one final state.
    """

    def __init__(
        self,
        users: UserRepository,
        processor: PaymentProcessor,
        orders: OrderService,
        ledger: LedgerService,
        default_currency: str = "usd",
    ) -> None:
        self._users = users
        self._processor = processor
        self._orders = orders
        self._ledger = ledger
        self._default_currency = default_currency

    def checkout(
        self,
        user_id: int,
        items: Sequence[CartItem],
        *,
        payment_method_id: Optional[str] = None,
        shipping_address: Optional[Address] = None,
        billing_address: Optional[Address] = None,
        currency: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Charge a cart and record the resulting order.

        Args:
            user_id: Buyer
            items: Cart lines with major-unit prices
            payment_method_id: Card to charge, defaults to the user's default card
            shipping_address: Optional shipping address
            billing_address: Billing address, defaults to the shipping address
            currency: ISO currency code, defaults to the configured currency

        Returns:
            Order confirmation including the card used

        Raises:
            ValueError: If the cart is empty, malformed or totals zero,
                or no payment method is available
            UserNotFound: If the user does not exist
            PaymentMethodNotOwned: If the card belongs to another customer
            PaymentDeclined: If the card is declined
            ProcessorUnavailable: If Stripe cannot be reached
        """
        currency = (currency or self._default_currency).lower()
        line_items = self._price_items(items)
        total_amount = sum(item.subtotal for item in line_items)
        if total_amount <= 0:
            raise ValueError("Total amount must be greater than 0")

        user = self._get_user(user_id)
        selected_method = payment_method_id or user.default_payment_method_id
        if not selected_method:
            raise ValueError("No payment method provided and no default payment method set")

        payment_method = self._processor.retrieve_payment_method(selected_method)
        if object_id(payment_method.get("customer")) != user.customer_id:
            raise PaymentMethodNotOwned("This payment method does not belong to your account")
        card = payment_method.get("card") or {}

        order_ref = self._orders.generate_order_ref()
        intent = self._processor.create_payment_intent(
            amount=total_amount,
            currency=currency,
            customer_id=user.customer_id,
            payment_method_id=selected_method,
            metadata={
                "orderId": order_ref,
                "userId": str(user.id),
                "customerId": user.customer_id,
                "itemCount": str(len(line_items)),
                "shipping": "yes" if shipping_address else "no",
            },
            description=f"Order {order_ref}",
            receipt_email=user.email,
        )
        intent_status = intent.get("status")

        self._orders.create_order(
            user.id,
            NewOrder(
                order_ref=order_ref,
                payment_intent_id=intent["id"],
                customer_id=user.customer_id,
                total_amount=total_amount,
                currency=currency,
                items=line_items,
                shipping_address=shipping_address,
                billing_address=billing_address or shipping_address,
                payment_method_id=selected_method,
                payment_method_last4=card.get("last4"),
            ),
            payment_status=intent_status or "unknown",
        )
        if intent_status in _LEDGER_STATUSES:
            self._ledger.record_payment(
                user.id,
                intent["id"],
                total_amount,
                currency,
                intent_status,
                payment_method_id=selected_method,
                payment_method_last4=card.get("last4"),
                order_ref=order_ref,
            )
        outcome = intent_status
        recorded = self._ledger.find_by_intent(user.id, intent["id"])
        if recorded is not None and recorded.status != PaymentStatus.PROCESSING.value:
            # A webhook for this intent was reconciled before the order existed
            outcome = recorded.status
        self._orders.apply_outcome(
            user.id,
            order_ref,
            self._orders.status_for_payment(outcome),
            outcome or "unknown",
        )
        order = self._orders.get_order(user.id, order_ref)
        logger.info("Checkout %s for user %s: %s", order_ref, user.id, order.status)

        summary = order.to_dict()
        summary["payment_method"] = {
            "id": selected_method,
            "brand": card.get("brand"),
            "last4": card.get("last4"),
        }
        summary["receipt_url"] = self._receipt_url(intent)
        return summary

    def _get_user(self, user_id: int) -> User:
        user = self._users.get_user_by_id(user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        return user

    @staticmethod
    def _price_items(items: Sequence[CartItem]) -> List[OrderItem]:
        if not items:
            raise ValueError("Cart items are required")
        priced: List[OrderItem] = []
        for item in items:
            if item.price is None or item.quantity is None or item.quantity <= 0:
                raise ValueError("Invalid item data: each item must have a price and positive quantity")
            unit_price = to_minor_units(item.price)
            priced.append(
                OrderItem(
                    name=item.name or "Product",
                    unit_price=unit_price,
                    quantity=item.quantity,
                    subtotal=unit_price * item.quantity,
                    description=item.description or "",
                    product_id=item.product_id or "",
                )
            )
        return priced

    @staticmethod
    def _receipt_url(intent: Dict[str, Any]) -> Optional[str]:
        charge = intent.get("latest_charge")
        if hasattr(charge, "get"):
            return charge.get("receipt_url")
        return None
