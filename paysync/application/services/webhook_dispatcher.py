"""
Routing of verified Stripe events to reconciliation handlers.

Every ``EventType`` maps to a tuple of handlers that run in order. Unknown
event types are acknowledged and logged so Stripe can add new types without
breaking delivery.

Handler failures are isolated:
- ``UserNotFound`` / ``OrderNotFound`` are logged and the next handler runs;
  the event is still acknowledged because redelivery cannot fix a mismatch.
- Any other exception is logged and swallowed if an earlier handler for the
  same event already did its work, otherwise it propagates so the HTTP layer
  answers 5xx and Stripe redelivers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ...domain.exceptions import OrderNotFound, UserNotFound
from ...domain.models import (
    Event,
    EventType,
    InvoiceEvent,
    OrderStatus,
    PaymentIntentEvent,
    PaymentStatus,
    SubscriptionEvent,
    UnknownEvent,
)
from ...domain.models.events import type_name
from .customer_resolver import CustomerResolver
from .ledger_service import LedgerService
from .order_service import OrderService
from .subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

Handler = Callable[[Event], None]


@dataclass(slots=True)
class DispatchResult:
    event_id: str
    event_type: str
    handled: bool
    completed: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "received": True,
            "event_id": self.event_id,
            "event_type": self.event_type,
            "handled": self.handled,
            "errors": list(self.errors),
        }


class WebhookDispatcher:
    """Maps each event type to the reconciliation steps it triggers."""

    def __init__(
        self,
        resolver: CustomerResolver,
        ledger: LedgerService,
        orders: OrderService,
        subscriptions: SubscriptionService,
    ) -> None:
        self._resolver = resolver
        self._ledger = ledger
        self._orders = orders
        self._subscriptions = subscriptions
        self._handlers: Dict[EventType, Tuple[Handler, ...]] = {
            EventType.PAYMENT_INTENT_SUCCEEDED: (self._record_succeeded,),
            EventType.PAYMENT_INTENT_FAILED: (self._record_failed, self._fail_order),
            EventType.PAYMENT_INTENT_CANCELED: (self._record_canceled, self._cancel_order),
            EventType.PAYMENT_INTENT_PROCESSING: (self._record_processing,),
            EventType.PAYMENT_INTENT_REQUIRES_ACTION: (self._note_requires_action,),
            EventType.PAYMENT_INTENT_CREATED: (self._acknowledge,),
            EventType.CHARGE_SUCCEEDED: (self._acknowledge,),
            EventType.CHARGE_UPDATED: (self._acknowledge,),
            EventType.CHARGE_FAILED: (self._acknowledge,),
            EventType.SUBSCRIPTION_CREATED: (self._subscription_created,),
            EventType.SUBSCRIPTION_UPDATED: (self._subscription_updated,),
            EventType.SUBSCRIPTION_DELETED: (self._subscription_deleted,),
            EventType.INVOICE_PAID: (self._record_invoice, self._activate_subscription),
            EventType.INVOICE_PAYMENT_SUCCEEDED: (self._record_invoice, self._activate_subscription),
            EventType.INVOICE_PAYMENT_FAILED: (self._mark_past_due,),
        }
        missing = set(EventType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handlers for event types: {sorted(t.value for t in missing)}")

    def handlers_for(self, event_type: EventType) -> Tuple[Handler, ...]:
        return self._handlers[event_type]

    def dispatch(self, event: Event) -> DispatchResult:
        """
        Dispatch a verified event to its handlers.

        Args:
            event: Typed event from the EventVerifier

        Returns:
            DispatchResult describing what ran and what was dropped
        """
        name = type_name(event)
        if isinstance(event, UnknownEvent):
            logger.info("Unhandled event type: %s (%s)", name, event.id)
            return DispatchResult(event_id=event.id, event_type=name, handled=False)

        result = DispatchResult(event_id=event.id, event_type=name, handled=True)
        logger.info("Processing %s event %s", name, event.id)
        for handler in self._handlers[event.type]:
            step = handler.__name__.lstrip("_")
            try:
                handler(event)
            except (UserNotFound, OrderNotFound) as exc:
                logger.warning("%s for event %s dropped: %s", step, event.id, exc.message)
                result.errors.append(exc.message)
                continue
            except Exception as exc:
                if not result.completed:
                    raise
                logger.exception("%s failed for event %s after partial success", step, event.id)
                result.errors.append(f"{step}: {exc}")
                continue
            result.completed.append(step)
        return result

    # Payment intent handlers -------------------------------------------------
    def _record_succeeded(self, event: PaymentIntentEvent) -> None:
        self._record_payment(event, PaymentStatus.SUCCEEDED.value)

    def _record_failed(self, event: PaymentIntentEvent) -> None:
        self._record_payment(event, PaymentStatus.FAILED.value, event.error_message or "Unknown error")

    def _record_canceled(self, event: PaymentIntentEvent) -> None:
        self._record_payment(event, PaymentStatus.CANCELED.value)

    def _record_processing(self, event: PaymentIntentEvent) -> None:
        self._record_payment(event, PaymentStatus.PROCESSING.value)

    def _record_payment(self, event: PaymentIntentEvent, status: str, error_message: Optional[str] = None) -> None:
        user = self._resolver.resolve(event.customer_id, event.metadata)
        self._ledger.record_payment(
            user.id,
            event.payment_intent_id,
            event.amount,
            event.currency,
            status,
            error_message=error_message,
            payment_method_id=event.payment_method_id,
            order_ref=event.order_ref,
            created_at=event.created,
        )

    def _fail_order(self, event: PaymentIntentEvent) -> None:
        self._advance_order(event, OrderStatus.FAILED.value, PaymentStatus.FAILED.value)

    def _cancel_order(self, event: PaymentIntentEvent) -> None:
        self._advance_order(event, OrderStatus.CANCELED.value, PaymentStatus.CANCELED.value)

    def _advance_order(self, event: PaymentIntentEvent, outcome: str, payment_status: str) -> None:
        if not event.order_ref:
            return
        user = self._resolver.resolve(event.customer_id, event.metadata)
        self._orders.apply_outcome(user.id, event.order_ref, outcome, payment_status)

    def _note_requires_action(self, event: PaymentIntentEvent) -> None:
        next_action = event.data.get("next_action") or {}
        logger.info(
            "PaymentIntent %s requires action: %s",
            event.payment_intent_id,
            next_action.get("type"),
        )

    def _acknowledge(self, event: Event) -> None:
        logger.info("%s received, no action needed", type_name(event))

    # Subscription handlers ---------------------------------------------------
    def _subscription_created(self, event: SubscriptionEvent) -> None:
        user = self._resolver.resolve(event.customer_id, event.metadata)
        self._subscriptions.apply_created(user, event)

    def _subscription_updated(self, event: SubscriptionEvent) -> None:
        user = self._resolver.resolve(event.customer_id, event.metadata)
        self._subscriptions.apply_updated(user, event)

    def _subscription_deleted(self, event: SubscriptionEvent) -> None:
        user = self._resolver.resolve(event.customer_id, event.metadata)
        self._subscriptions.apply_deleted(user, event)

    # Invoice handlers --------------------------------------------------------
    def _record_invoice(self, event: InvoiceEvent) -> None:
        if not event.subscription_id:
            logger.info("Invoice %s is not a subscription invoice; not recorded", event.invoice_id)
            return
        user = self._resolver.resolve(event.customer_id, event.metadata)
        self._ledger.record_payment(
            user.id,
            event.payment_intent_id,
            event.amount_paid,
            event.currency,
            PaymentStatus.SUCCEEDED.value,
            payment_method_id=event.payment_method_id,
            subscription_id=event.subscription_id,
            invoice_id=event.invoice_id,
            created_at=event.created,
        )

    def _activate_subscription(self, event: InvoiceEvent) -> None:
        if not event.subscription_id:
            return
        user = self._resolver.resolve(event.customer_id, event.metadata)
        self._subscriptions.apply_invoice_paid(user, event)

    def _mark_past_due(self, event: InvoiceEvent) -> None:
        user = self._resolver.resolve(event.customer_id, event.metadata)
        self._subscriptions.apply_invoice_payment_failed(user, event)
