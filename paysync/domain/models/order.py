"""Order domain model and its status lifecycle."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_ORDER_STATUSES = frozenset(
    {OrderStatus.COMPLETED.value, OrderStatus.FAILED.value, OrderStatus.CANCELED.value}
)


@dataclass(slots=True)
class OrderItem:
    name: str
    unit_price: int
    quantity: int
    subtotal: int
    description: str = ""
    product_id: str = ""


@dataclass(slots=True)
class Address:
    name: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None


@dataclass(slots=True)
class Order:
    """
    One checkout placed by a user.

    Attributes:
        order_ref: Application-generated reference, unique per user
        payment_intent_id: Stripe payment intent paying for the order
        customer_id: Stripe customer the intent was created for
        total_amount: Sum of item subtotals in minor currency units
        currency: ISO currency code
        items: Line items snapshot
        shipping_address: Shipping address snapshot
        billing_address: Billing address snapshot
        status: pending until a payment outcome moves it to a terminal state
        payment_status: Last known Stripe payment intent status
    """

    id: int
    user_id: int
    order_ref: str
    payment_intent_id: str
    customer_id: Optional[str]
    total_amount: int
    currency: str
    items: List[OrderItem]
    status: str
    payment_status: str
    shipping_address: Optional[Address] = None
    billing_address: Optional[Address] = None
    payment_method_id: Optional[str] = None
    payment_method_last4: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_ref": self.order_ref,
            "payment_intent_id": self.payment_intent_id,
            "total_amount": self.total_amount,
            "currency": self.currency,
            "items": [asdict(item) for item in self.items],
            "shipping_address": asdict(self.shipping_address) if self.shipping_address else None,
            "billing_address": asdict(self.billing_address) if self.billing_address else None,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method_id": self.payment_method_id,
            "payment_method_last4": self.payment_method_last4,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(slots=True)
class NewOrder:
    """Order fields known at checkout time, before the store assigns an id."""

    order_ref: str
    payment_intent_id: str
    customer_id: Optional[str]
    total_amount: int
    currency: str
    items: List[OrderItem] = field(default_factory=list)
    shipping_address: Optional[Address] = None
    billing_address: Optional[Address] = None
    payment_method_id: Optional[str] = None
    payment_method_last4: Optional[str] = None


@dataclass(slots=True)
class CartItem:
    """A cart line as submitted at checkout, priced in major currency units."""

    name: str
    price: Decimal
    quantity: int
    description: str = ""
    product_id: str = ""
