"""Append-only payment history."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from ...domain.exceptions import OrderNotFound, ProcessorUnavailable
from ...domain.models import OrderStatus, PaymentRecord, PaymentStatus
from ...domain.models.payment import UNKNOWN_LAST4
from ...domain.ports.persistence import LedgerRepository
from ...domain.ports.processor import PaymentProcessor
from .idempotency import IdempotencyGuard
from .order_service import OrderService

logger = logging.getLogger(__name__)

_LEDGER_STATUSES = frozenset(status.value for status in PaymentStatus)


class LedgerService:
    """Records payment attempts, at most once per payment intent and per invoice."""

    def __init__(
        self,
        ledger: LedgerRepository,
        guard: IdempotencyGuard,
        orders: OrderService,
        processor: PaymentProcessor,
    ) -> None:
        self._ledger = ledger
        self._guard = guard
        self._orders = orders
        self._processor = processor

    def record_payment(
        self,
        user_id: int,
        payment_intent_id: Optional[str],
        amount: int,
        currency: str,
        status: str,
        *,
        error_message: Optional[str] = None,
        payment_method_id: Optional[str] = None,
        payment_method_last4: Optional[str] = None,
        order_ref: Optional[str] = None,
        subscription_id: Optional[str] = None,
        invoice_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> bool:
        """
        Append one payment record and advance the paid order, if any.

        A record whose payment intent (or invoice) is already in the user's
        history is not written again; that case returns False and is not an
        error. A successful payment tied to an order moves the order to
        completed whether or not the record was new, so a redelivery can
        finish work an earlier attempt left undone.

        Args:
            user_id: Owner of the payment history
            payment_intent_id: Stripe payment intent id (primary dedup key)
            amount: Amount in minor currency units
            currency: ISO currency code
            status: succeeded, processing, failed or canceled
            error_message: Failure reason for failed attempts
            payment_method_id: Stripe payment method used
            payment_method_last4: Card last four if already known
            order_ref: Order paid by this intent
            subscription_id: Subscription billed by this payment
            invoice_id: Stripe invoice id (secondary dedup key)
            created_at: When the attempt happened, defaults to now

        Returns:
            True if a new record was appended
        """
        if status not in _LEDGER_STATUSES:
            raise ValueError(f"Unsupported payment status: {status}")
        if not payment_intent_id and not invoice_id:
            raise ValueError("A payment record needs a payment intent id or an invoice id")

        appended = False
        if self._already_recorded(user_id, payment_intent_id, invoice_id):
            logger.info(
                "Payment %s already recorded for user %s",
                payment_intent_id or invoice_id,
                user_id,
            )
        else:
            last4 = payment_method_last4
            if last4 is None and payment_method_id:
                last4 = self._lookup_last4(payment_method_id)
            appended = self._ledger.append_payment(
                user_id,
                payment_intent_id=payment_intent_id,
                amount=amount,
                currency=currency,
                status=status,
                invoice_id=invoice_id,
                error_message=error_message,
                payment_method_id=payment_method_id,
                payment_method_last4=last4,
                order_ref=order_ref,
                subscription_id=subscription_id,
                created_at=created_at,
            )
            if appended:
                logger.info("Payment %s (%s) recorded for user %s", payment_intent_id or invoice_id, status, user_id)
            else:
                logger.info("Payment %s was recorded concurrently for user %s", payment_intent_id or invoice_id, user_id)

        if status == PaymentStatus.SUCCEEDED.value and order_ref:
            try:
                self._orders.apply_outcome(
                    user_id,
                    order_ref,
                    OrderStatus.COMPLETED.value,
                    PaymentStatus.SUCCEEDED.value,
                )
            except OrderNotFound as exc:
                # The checkout request may not have saved the order yet; it
                # will apply the same outcome when it does.
                logger.warning("Payment %s recorded but %s", payment_intent_id, exc.message)

        return appended

    def history(self, user_id: int) -> List[PaymentRecord]:
        return self._ledger.get_payment_history(user_id)

    def get_record(self, user_id: int, record_id: int) -> Optional[PaymentRecord]:
        return self._ledger.get_payment(user_id, record_id)

    def find_by_intent(self, user_id: int, payment_intent_id: str) -> Optional[PaymentRecord]:
        return self._ledger.get_payment_by_intent(user_id, payment_intent_id)

    def _already_recorded(self, user_id: int, payment_intent_id: Optional[str], invoice_id: Optional[str]) -> bool:
        if payment_intent_id and self._guard.payment_applied(user_id, payment_intent_id):
            return True
        return bool(invoice_id) and self._guard.invoice_applied(user_id, invoice_id)

    def _lookup_last4(self, payment_method_id: str) -> str:
        try:
            payment_method = self._processor.retrieve_payment_method(payment_method_id)
        except ProcessorUnavailable as exc:
            logger.error("Error retrieving payment method %s: %s", payment_method_id, exc.message)
            return UNKNOWN_LAST4
        card = payment_method.get("card") or {}
        return card.get("last4") or UNKNOWN_LAST4
