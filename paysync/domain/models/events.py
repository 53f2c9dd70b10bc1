"""Typed Stripe webhook events.

A verified event is decoded into one variant of a closed union:
``PaymentIntentEvent``, ``SubscriptionEvent``, ``InvoiceEvent`` or
``UnknownEvent``. The dispatcher routes on ``EventType`` so that every known
event type has an explicit entry in its handler table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union


class EventType(str, Enum):
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
    PAYMENT_INTENT_CANCELED = "payment_intent.canceled"
    PAYMENT_INTENT_PROCESSING = "payment_intent.processing"
    PAYMENT_INTENT_REQUIRES_ACTION = "payment_intent.requires_action"
    PAYMENT_INTENT_CREATED = "payment_intent.created"
    CHARGE_SUCCEEDED = "charge.succeeded"
    CHARGE_UPDATED = "charge.updated"
    CHARGE_FAILED = "charge.failed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"

    @classmethod
    def lookup(cls, value: str) -> Optional["EventType"]:
        try:
            return cls(value)
        except ValueError:
            return None


def _timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def object_id(value: Any) -> Optional[str]:
    # Stripe fields may be a bare id or an expanded object
    if hasattr(value, "get"):
        return value.get("id")
    return value


@dataclass(slots=True)
class PaymentIntentEvent:
    """A ``payment_intent.*`` or ``charge.*`` notification."""

    id: str
    type: EventType
    payment_intent_id: Optional[str]
    amount: int
    currency: str
    status: Optional[str]
    customer_id: Optional[str]
    payment_method_id: Optional[str]
    metadata: Dict[str, str] = field(default_factory=dict)
    error_message: Optional[str] = None
    created: Optional[datetime] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def order_ref(self) -> Optional[str]:
        return self.metadata.get("orderId") or self.metadata.get("order_ref")

    @classmethod
    def from_object(cls, event_id: str, event_type: EventType, obj: Dict[str, Any]) -> "PaymentIntentEvent":
        if event_type.value.startswith("charge."):
            intent_id = object_id(obj.get("payment_intent"))
        else:
            intent_id = obj.get("id")
        last_error = obj.get("last_payment_error") or {}
        return cls(
            id=event_id,
            type=event_type,
            payment_intent_id=intent_id,
            amount=int(obj.get("amount") or 0),
            currency=obj.get("currency") or "usd",
            status=obj.get("status"),
            customer_id=object_id(obj.get("customer")),
            payment_method_id=object_id(obj.get("payment_method")),
            metadata=dict(obj.get("metadata") or {}),
            error_message=last_error.get("message") if isinstance(last_error, dict) else None,
            created=_timestamp(obj.get("created")),
            data=obj,
        )


@dataclass(slots=True)
class SubscriptionEvent:
    """A ``customer.subscription.*`` notification."""

    id: str
    type: EventType
    subscription_id: str
    customer_id: Optional[str]
    status: Optional[str]
    current_period_end: Optional[datetime]
    cancel_at_period_end: bool
    price_id: Optional[str]
    metadata: Dict[str, str] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_object(cls, event_id: str, event_type: EventType, obj: Dict[str, Any]) -> "SubscriptionEvent":
        return cls(
            id=event_id,
            type=event_type,
            subscription_id=obj.get("id"),
            customer_id=object_id(obj.get("customer")),
            status=obj.get("status"),
            current_period_end=_timestamp(subscription_period_end(obj)),
            cancel_at_period_end=bool(obj.get("cancel_at_period_end", False)),
            price_id=subscription_price_id(obj),
            metadata=dict(obj.get("metadata") or {}),
            data=obj,
        )


@dataclass(slots=True)
class InvoiceEvent:
    """An ``invoice.*`` notification."""

    id: str
    type: EventType
    invoice_id: str
    customer_id: Optional[str]
    subscription_id: Optional[str]
    payment_intent_id: Optional[str]
    amount_paid: int
    currency: str
    payment_method_id: Optional[str]
    period_end: Optional[datetime]
    created: Optional[datetime]
    metadata: Dict[str, str] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_object(cls, event_id: str, event_type: EventType, obj: Dict[str, Any]) -> "InvoiceEvent":
        lines = (obj.get("lines") or {}).get("data") or []
        period_end = None
        if lines:
            period_end = (lines[0].get("period") or {}).get("end")
        return cls(
            id=event_id,
            type=event_type,
            invoice_id=obj.get("id"),
            customer_id=object_id(obj.get("customer")),
            subscription_id=invoice_subscription_id(obj),
            payment_intent_id=object_id(obj.get("payment_intent")),
            amount_paid=int(obj.get("amount_paid") or 0),
            currency=obj.get("currency") or "usd",
            payment_method_id=object_id(obj.get("default_payment_method")),
            period_end=_timestamp(period_end),
            created=_timestamp(obj.get("created")),
            metadata=dict(obj.get("metadata") or {}),
            data=obj,
        )


@dataclass(slots=True)
class UnknownEvent:
    """Any event type this service does not know about yet."""

    id: str
    type: str
    data: Dict[str, Any] = field(default_factory=dict)


Event = Union[PaymentIntentEvent, SubscriptionEvent, InvoiceEvent, UnknownEvent]


def subscription_period_end(obj: Dict[str, Any]) -> Optional[int]:
    """Return the period end timestamp of a Stripe subscription object.

    Recent API versions moved ``current_period_end`` from the subscription
    onto its items, so both places are checked.
    """
    value = obj.get("current_period_end")
    if value:
        return value
    items = (obj.get("items") or {}).get("data") or []
    if items:
        return items[0].get("current_period_end")
    return None


def invoice_subscription_id(obj: Dict[str, Any]) -> Optional[str]:
    subscription_id = object_id(obj.get("subscription"))
    if subscription_id is None:
        # Newer API versions nest the subscription under parent
        details = (obj.get("parent") or {}).get("subscription_details") or {}
        subscription_id = object_id(details.get("subscription"))
    return subscription_id


def subscription_price_id(obj: Dict[str, Any]) -> Optional[str]:
    items = (obj.get("items") or {}).get("data") or []
    if not items:
        return None
    return object_id(items[0].get("price"))


def parse_event(raw: Dict[str, Any]) -> Event:
    """Decode a verified Stripe event payload into its typed variant."""
    event_id = raw["id"]
    raw_type = raw["type"]
    obj = raw["data"]["object"]
    event_type = EventType.lookup(raw_type)
    if event_type is None:
        return UnknownEvent(id=event_id, type=raw_type, data=obj)
    if raw_type.startswith(("payment_intent.", "charge.")):
        return PaymentIntentEvent.from_object(event_id, event_type, obj)
    if raw_type.startswith("customer.subscription."):
        return SubscriptionEvent.from_object(event_id, event_type, obj)
    return InvoiceEvent.from_object(event_id, event_type, obj)


def type_name(event: Event) -> str:
    """Return the raw Stripe type string of any event variant."""
    if isinstance(event, UnknownEvent):
        return event.type
    return event.type.value
