"""End-to-end reconciliation between checkout and webhook deliveries."""
from decimal import Decimal

import pytest

from paysync.domain.models import CartItem

from conftest import event_from, invoice_object, payment_intent_object, subscription_object

CART = [
    CartItem(name="Mug", price=Decimal("10.00"), quantity=2),
    CartItem(name="Coaster", price=Decimal("5.99"), quantity=1),
]


def _succeeded_event(user, order_ref, intent_id, customer_id=None):
    obj = payment_intent_object(
        intent_id=intent_id,
        amount=2599,
        customer=customer_id or user.customer_id,
        metadata={"orderId": order_ref, "userId": str(user.id)},
    )
    return event_from("payment_intent.succeeded", obj, f"evt_{intent_id}")


def test_checkout_then_success_event(checkout_service, dispatcher, order_service, ledger_service, processor, user):
    processor.intent_status = "requires_action"

    placed = checkout_service.checkout(user.id, CART)

    assert placed["total_amount"] == 2599
    assert placed["status"] == "pending"
    assert ledger_service.history(user.id) == []

    event = _succeeded_event(user, placed["order_ref"], placed["payment_intent_id"])
    dispatcher.dispatch(event)

    order = order_service.get_order(user.id, placed["order_ref"])
    assert (order.status, order.payment_status) == ("completed", "succeeded")
    [record] = ledger_service.history(user.id)
    assert record.amount == 2599

    dispatcher.dispatch(event)

    assert len(ledger_service.history(user.id)) == 1
    assert order_service.get_order(user.id, placed["order_ref"]).status == "completed"


@pytest.mark.parametrize("intent_status", ["requires_action", "succeeded"])
def test_event_and_checkout_commute(
    checkout_service, dispatcher, order_service, ledger_service, processor, store, monkeypatch, intent_status
):
    processor.intent_status = intent_status
    monkeypatch.setattr(order_service, "generate_order_ref", lambda: "order_fixed")

    def final_state(user):
        order = order_service.get_order(user.id, "order_fixed")
        records = [(r.payment_intent_id, r.amount, r.order_ref) for r in ledger_service.history(user.id)]
        return order.status, order.payment_status, order.total_amount, records

    # Checkout first, event second
    first = store.create_user("first@example.com", "cus_first", default_payment_method_id="pm_first")
    processor.add_card("pm_first", "cus_first")
    processor.intent_ids.append("pi_commute")
    checkout_service.checkout(first.id, CART)
    dispatcher.dispatch(_succeeded_event(first, "order_fixed", "pi_commute"))

    # Event first, checkout second
    second = store.create_user("second@example.com", "cus_second", default_payment_method_id="pm_second")
    processor.add_card("pm_second", "cus_second")
    dispatcher.dispatch(_succeeded_event(second, "order_fixed", "pi_commute"))
    assert order_service.list_orders(second.id) == []
    processor.intent_ids.append("pi_commute")
    checkout_service.checkout(second.id, CART)

    assert final_state(first) == final_state(second)
    assert final_state(first)[:2] == ("completed", "succeeded")


def test_failed_event_before_checkout_fails_the_order(
    checkout_service, dispatcher, order_service, processor, user, monkeypatch
):
    processor.intent_status = "requires_action"
    processor.intent_ids.append("pi_early")
    monkeypatch.setattr(order_service, "generate_order_ref", lambda: "order_early")
    obj = payment_intent_object(
        intent_id="pi_early",
        status="requires_payment_method",
        metadata={"orderId": "order_early", "userId": str(user.id)},
        error_message="Your card was declined.",
    )
    dispatcher.dispatch(event_from("payment_intent.payment_failed", obj))

    checkout_service.checkout(user.id, CART)

    assert order_service.get_order(user.id, "order_early").status == "failed"


def _subscription_status(store, user):
    return store.get_user_by_id(user.id).subscription.status


@pytest.mark.parametrize("late_type", ["invoice.paid", "invoice.payment_succeeded", "invoice.payment_failed"])
def test_late_invoice_event_leaves_deleted_subscription_canceled(dispatcher, store, user, late_type):
    dispatcher.dispatch(event_from("customer.subscription.created", subscription_object(), "evt_created"))
    dispatcher.dispatch(
        event_from("customer.subscription.deleted", subscription_object(status="canceled"), "evt_deleted")
    )

    dispatcher.dispatch(event_from(late_type, invoice_object(payment_intent="pi_late"), "evt_late"))

    assert _subscription_status(store, user) == "canceled"


def test_zero_amount_trial_invoice_keeps_trialing(dispatcher, store, user):
    dispatcher.dispatch(
        event_from("customer.subscription.created", subscription_object(status="trialing"), "evt_created")
    )

    dispatcher.dispatch(event_from("invoice.paid", invoice_object(amount_paid=0), "evt_trial_invoice"))

    assert _subscription_status(store, user) == "trialing"
