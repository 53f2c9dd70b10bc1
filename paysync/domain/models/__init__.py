"""Domain models for the paysync service."""

from .events import (
    Event,
    EventType,
    InvoiceEvent,
    PaymentIntentEvent,
    SubscriptionEvent,
    UnknownEvent,
)
from .order import Address, CartItem, NewOrder, Order, OrderItem, OrderStatus
from .payment import PaymentRecord, PaymentStatus, SavedCard
from .subscription import SubscriptionDescriptor, SubscriptionStatus
from .user import DeletionFeedback, User

__all__ = [
    "Address",
    "CartItem",
    "DeletionFeedback",
    "Event",
    "EventType",
    "InvoiceEvent",
    "NewOrder",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentIntentEvent",
    "PaymentRecord",
    "PaymentStatus",
    "SavedCard",
    "SubscriptionDescriptor",
    "SubscriptionEvent",
    "SubscriptionStatus",
    "UnknownEvent",
    "User",
]
