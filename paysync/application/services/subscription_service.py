"""Service mirroring Stripe subscription state onto the user record."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ...domain.exceptions import (
    PaymentMethodNotOwned,
    ProcessorUnavailable,
    SubscriptionError,
    UserNotFound,
)
from ...domain.models import (
    InvoiceEvent,
    PaymentStatus,
    SubscriptionDescriptor,
    SubscriptionEvent,
    SubscriptionStatus,
    User,
)
from ...domain.models.events import object_id, subscription_period_end
from ...domain.ports.persistence import PersistenceGateway
from ...domain.ports.processor import PaymentProcessor
from .ledger_service import LedgerService

logger = logging.getLogger(__name__)


def _timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class SubscriptionService:
    """Service for managing user subscriptions.

    Stripe is the source of truth for subscription id, status and period end;
    webhook handlers overwrite them as delivered. Status ``canceled`` is final
    for a subscription id, a resubscription always gets a new id.
    """

    def __init__(
        self,
        store: PersistenceGateway,
        processor: PaymentProcessor,
        ledger: LedgerService,
    ) -> None:
        self.store = store
        self.processor = processor
        self.ledger = ledger

    # Webhook-driven transitions ----------------------------------------------
    def apply_created(self, user: User, event: SubscriptionEvent) -> None:
        """Handle a ``customer.subscription.created`` event."""
        self._overwrite(user, event)
        logger.info("Subscription %s created for user %s", event.subscription_id, user.id)

    def apply_updated(self, user: User, event: SubscriptionEvent) -> None:
        """Handle a ``customer.subscription.updated`` event."""
        self._overwrite(user, event)
        logger.info(
            "Subscription %s updated for user %s: %s",
            event.subscription_id,
            user.id,
            event.status,
        )

    def apply_deleted(self, user: User, event: SubscriptionEvent) -> bool:
        """
        Handle a ``customer.subscription.deleted`` event.

        Args:
            user: Resolved owner of the subscription
            event: Subscription event

        Returns:
            True if the user's record changed, False if the event names a
            subscription the user has since replaced
        """
        updated = self.store.update_subscription_if_current(
            user.id,
            event.subscription_id,
            status=SubscriptionStatus.CANCELED.value,
            cancel_at_period_end=False,
            allow_unset=True,
        )
        if updated:
            logger.info("Subscription %s canceled for user %s", event.subscription_id, user.id)
        else:
            logger.info(
                "Ignoring deletion of %s; user %s now has subscription %s",
                event.subscription_id,
                user.id,
                user.subscription.id,
            )
        return updated

    def apply_invoice_payment_failed(self, user: User, event: InvoiceEvent) -> bool:
        """Mark the current subscription past due when its invoice fails.

        A canceled subscription stays canceled.
        """
        if not event.subscription_id:
            logger.info("Invoice %s has no subscription; nothing to update", event.invoice_id)
            return False
        updated = self.store.update_subscription_if_current(
            user.id,
            event.subscription_id,
            status=SubscriptionStatus.PAST_DUE.value,
            exclude_status=SubscriptionStatus.CANCELED.value,
        )
        if updated:
            logger.info("Subscription %s payment failed for user %s", event.subscription_id, user.id)
        else:
            logger.info(
                "Invoice %s failed for superseded or canceled subscription %s of user %s",
                event.invoice_id,
                event.subscription_id,
                user.id,
            )
        return updated

    def apply_invoice_paid(self, user: User, event: InvoiceEvent) -> bool:
        """
        Refresh the billing period of the current subscription from a paid invoice.

        Only a ``past_due`` subscription is moved back to ``active``; any other
        status (``trialing`` included) is left for the subscription events to
        report. A canceled subscription is not touched.

        Returns:
            True if the stored descriptor changed
        """
        if not event.subscription_id:
            return False
        canceled = SubscriptionStatus.CANCELED.value
        refreshed = False
        if event.period_end is not None:
            refreshed = self.store.update_subscription_if_current(
                user.id,
                event.subscription_id,
                current_period_end=event.period_end,
                exclude_status=canceled,
            )
        recovered = self.store.update_subscription_if_current(
            user.id,
            event.subscription_id,
            status=SubscriptionStatus.ACTIVE.value,
            require_status=SubscriptionStatus.PAST_DUE.value,
        )
        if recovered:
            logger.info("Subscription %s recovered from past_due for user %s", event.subscription_id, user.id)
        return refreshed or recovered

    def _overwrite(self, user: User, event: SubscriptionEvent) -> None:
        self.store.set_subscription(
            user.id,
            subscription_id=event.subscription_id,
            status=event.status,
            current_period_end=event.current_period_end,
            price_id=event.price_id,
            cancel_at_period_end=event.cancel_at_period_end,
        )

    # Request-driven operations -----------------------------------------------
    def create(
        self,
        user_id: int,
        price_id: str,
        payment_method_id: Optional[str] = None,
        trial_days: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Subscribe a user to a price.

        Args:
            user_id: User ID
            price_id: Stripe price ID
            payment_method_id: Payment method to bill, defaults to the user's default
            trial_days: Optional trial period in days

        Returns:
            Summary of the created subscription

        Raises:
            SubscriptionError: If the user already has an active subscription
                or no payment method is available
            PaymentMethodNotOwned: If the payment method belongs to another customer
            PaymentDeclined: If the first charge is declined
            ProcessorUnavailable: If Stripe cannot be reached
        """
        user = self._get_user(user_id)
        if user.subscription.id and user.subscription.is_active():
            raise SubscriptionError(
                "User already has an active subscription",
                details={"subscription_id": user.subscription.id, "status": user.subscription.status},
            )

        selected_method = payment_method_id or user.default_payment_method_id
        if not selected_method:
            raise SubscriptionError("No payment method provided and no default payment method set")

        payment_method = self.processor.retrieve_payment_method(selected_method)
        if object_id(payment_method.get("customer")) != user.customer_id:
            raise PaymentMethodNotOwned("This payment method does not belong to your account")

        trial_end = None
        if trial_days and trial_days > 0:
            trial_end = int(time.time()) + trial_days * 24 * 60 * 60

        subscription = self.processor.create_subscription(
            customer_id=user.customer_id,
            price_id=price_id,
            payment_method_id=selected_method,
            metadata={"userId": str(user.id)},
            trial_end=trial_end,
        )
        billing = self._billing_details(price_id)
        period_end = _timestamp(subscription_period_end(subscription))

        self.store.set_subscription(
            user.id,
            subscription_id=subscription["id"],
            status=subscription.get("status"),
            current_period_end=period_end,
            price_id=price_id,
            cancel_at_period_end=False,
            billing=billing,
        )
        logger.info("Subscription %s created for user %s", subscription["id"], user.id)

        card = payment_method.get("card") or {}
        self._record_paid_invoice(user, subscription, selected_method, card.get("last4"))

        return {
            "id": subscription["id"],
            "status": subscription.get("status"),
            "current_period_end": period_end,
            "billing": billing,
            "payment_method": {
                "id": selected_method,
                "brand": card.get("brand"),
                "last4": card.get("last4"),
            },
        }

    def change_plan(
        self,
        user_id: int,
        price_id: str,
        proration_behavior: str = "create_prorations",
    ) -> Dict[str, Any]:
        """
        Move the user's subscription to another price.

        The subscription status is not written here; Stripe reports it
        through ``customer.subscription.updated``. A proration invoice that is
        already paid is recorded in the payment history.

        Raises:
            SubscriptionError: If the user has no live subscription or Stripe
                returns it without items
            ProcessorUnavailable: If Stripe cannot be reached
        """
        user = self._get_user(user_id)
        current = self._live_subscription(user)

        remote = self.processor.retrieve_subscription(current.id)
        items = (remote.get("items") or {}).get("data") or []
        if not items:
            raise SubscriptionError("No subscription items found", details={"subscription_id": current.id})

        updated = self.processor.update_subscription(
            current.id,
            proration_behavior=proration_behavior,
            items=[{"id": items[0]["id"], "price": price_id}],
            expand=["latest_invoice.payment_intent"],
        )
        billing = self._billing_details(price_id)
        period_end = _timestamp(subscription_period_end(updated))
        self.store.update_subscription_if_current(
            user.id,
            current.id,
            price_id=price_id,
            billing=billing,
            current_period_end=period_end,
            exclude_status=SubscriptionStatus.CANCELED.value,
        )
        logger.info("Subscription %s of user %s moved to price %s", current.id, user.id, price_id)

        payment_method_id = object_id(updated.get("default_payment_method")) or user.default_payment_method_id
        self._record_paid_invoice(user, updated, payment_method_id, None)

        return {
            "id": updated["id"],
            "status": updated.get("status"),
            "price_id": price_id,
            "current_period_end": period_end,
            "billing": billing,
        }

    def update_payment_method(self, user_id: int, payment_method_id: str) -> Dict[str, Any]:
        """
        Bill the user's subscription to another of their cards.

        Raises:
            SubscriptionError: If the user has no live subscription
            PaymentMethodNotOwned: If the card belongs to another customer
            ProcessorUnavailable: If Stripe cannot be reached
        """
        user = self._get_user(user_id)
        current = self._live_subscription(user)

        payment_method = self.processor.retrieve_payment_method(payment_method_id)
        if object_id(payment_method.get("customer")) != user.customer_id:
            raise PaymentMethodNotOwned("This payment method does not belong to your account")

        updated = self.processor.update_subscription(current.id, default_payment_method=payment_method_id)
        logger.info("Subscription %s of user %s now billed to %s", current.id, user.id, payment_method_id)
        card = payment_method.get("card") or {}
        return {
            "id": updated["id"],
            "status": updated.get("status"),
            "payment_method": {
                "id": payment_method_id,
                "brand": card.get("brand"),
                "last4": card.get("last4"),
            },
        }

    def cancel(self, user_id: int, immediate: bool = False) -> SubscriptionDescriptor:
        """
        Cancel a user's subscription.

        Immediate cancellation is terminal right away. Otherwise the
        subscription stays in its current status with ``cancel_at_period_end``
        set, and the ``customer.subscription.deleted`` event finishes it.

        Raises:
            SubscriptionError: If the user has no cancellable subscription
            ProcessorUnavailable: If Stripe cannot be reached
        """
        user = self._get_user(user_id)
        current = self._live_subscription(user)

        if immediate:
            self.processor.cancel_subscription(current.id)
            self.store.update_subscription_if_current(
                user.id,
                current.id,
                status=SubscriptionStatus.CANCELED.value,
                cancel_at_period_end=False,
            )
            logger.info("Subscription %s canceled immediately for user %s", current.id, user.id)
        else:
            remote = self.processor.update_subscription(current.id, cancel_at_period_end=True)
            self.store.update_subscription_if_current(
                user.id,
                current.id,
                cancel_at_period_end=True,
                current_period_end=_timestamp(subscription_period_end(remote)),
            )
            logger.info("Subscription %s will cancel at period end for user %s", current.id, user.id)

        return self._get_user(user_id).subscription

    def current(self, user_id: int, refresh: bool = False) -> SubscriptionDescriptor:
        """
        Get a user's subscription descriptor.

        With ``refresh`` the descriptor is first re-read from Stripe; if Stripe
        is unreachable the stored descriptor is returned.
        """
        user = self._get_user(user_id)
        if refresh and user.subscription.id:
            try:
                remote = self.processor.retrieve_subscription(user.subscription.id)
            except ProcessorUnavailable as exc:
                logger.warning("Serving stored subscription for user %s: %s", user.id, exc.message)
                return user.subscription
            self.store.set_subscription(
                user.id,
                subscription_id=remote["id"],
                status=remote.get("status"),
                current_period_end=_timestamp(subscription_period_end(remote)),
                cancel_at_period_end=bool(remote.get("cancel_at_period_end", False)),
            )
            user = self._get_user(user_id)
        return user.subscription

    def _get_user(self, user_id: int) -> User:
        user = self.store.get_user_by_id(user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        return user

    @staticmethod
    def _live_subscription(user: User) -> SubscriptionDescriptor:
        current = user.subscription
        if not current.id or current.status == SubscriptionStatus.CANCELED.value:
            raise SubscriptionError("No active subscription found")
        return current

    def _billing_details(self, price_id: str) -> Dict[str, Any]:
        try:
            price = self.processor.retrieve_price(price_id)
        except ProcessorUnavailable as exc:
            logger.warning("Could not load price %s details: %s", price_id, exc.message)
            return {}
        recurring = price.get("recurring") or {}
        product = price.get("product")
        product_name = product.get("name") if hasattr(product, "get") else None
        return {
            "interval": recurring.get("interval"),
            "interval_count": recurring.get("interval_count"),
            "amount": price.get("unit_amount"),
            "currency": price.get("currency"),
            "product_id": object_id(product),
            "product_name": product_name,
        }

    def _record_paid_invoice(
        self,
        user: User,
        subscription: Dict[str, Any],
        payment_method_id: Optional[str],
        last4: Optional[str],
    ) -> None:
        invoice = subscription.get("latest_invoice")
        if not hasattr(invoice, "get"):
            return
        intent = invoice.get("payment_intent")
        if not hasattr(intent, "get") or intent.get("status") != PaymentStatus.SUCCEEDED.value:
            return
        self.ledger.record_payment(
            user.id,
            intent["id"],
            int(invoice.get("amount_paid") or 0),
            invoice.get("currency") or "usd",
            PaymentStatus.SUCCEEDED.value,
            payment_method_id=payment_method_id,
            payment_method_last4=last4,
            subscription_id=subscription["id"],
            invoice_id=invoice.get("id"),
        )
