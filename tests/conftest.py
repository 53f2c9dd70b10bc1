"""
Pytest configuration and fixtures.
"""
import hashlib
import hmac
import itertools
import json
import time
from typing import Any, Dict, Iterator, List, Optional

import jwt
import pytest
from fastapi.testclient import TestClient

from paysync.application.services.account_service import AccountService
from paysync.application.services.card_service import CardService
from paysync.application.services.checkout_service import CheckoutService
from paysync.application.services.customer_resolver import CustomerResolver
from paysync.application.services.idempotency import IdempotencyGuard
from paysync.application.services.invoice_service import InvoiceService
from paysync.application.services.ledger_service import LedgerService
from paysync.application.services.order_service import OrderService
from paysync.application.services.subscription_service import SubscriptionService
from paysync.application.services.webhook_dispatcher import WebhookDispatcher
from paysync.core.app_factory import create_application
from paysync.core.config import Settings
from paysync.domain.exceptions import PaymentDeclined, ProcessorUnavailable
from paysync.domain.models import User
from paysync.domain.models.events import parse_event
from paysync.infrastructure.persistence.sqlite import SQLitePersistence

WEBHOOK_SECRET = "whsec_test_fake_secret"
JWT_SECRET = "test-jwt-secret"
CUSTOMER_ID = "cus_test_123"
CARD_ID = "pm_card_visa"
PERIOD_END = 1_900_000_000


class FakeProcessor:
    """In-memory stand-in for the Stripe processor port."""

    def __init__(self) -> None:
        self.payment_methods: Dict[str, Dict[str, Any]] = {}
        self.customer_defaults: Dict[str, Optional[str]] = {}
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.prices: Dict[str, Dict[str, Any]] = {}
        self.invoices: List[Dict[str, Any]] = []
        self.intents: List[Dict[str, Any]] = []
        self.intent_ids: List[str] = []
        self.deleted_customers: List[str] = []
        self.calls: List[str] = []
        self.unavailable: set = set()
        self.intent_status = "succeeded"
        self.subscription_status = "active"
        self.proration_invoice: Optional[Dict[str, Any]] = None
        self.decline = False
        self._ids = itertools.count(1)

    def add_card(
        self,
        payment_method_id: str,
        customer_id: Optional[str],
        last4: str = "4242",
        brand: str = "visa",
    ) -> None:
        self.payment_methods[payment_method_id] = {
            "id": payment_method_id,
            "customer": customer_id,
            "card": {"brand": brand, "last4": last4, "exp_month": 12, "exp_year": 2030},
        }

    def add_price(self, price_id: str, amount: int = 1999, interval: str = "month") -> None:
        self.prices[price_id] = {
            "id": price_id,
            "unit_amount": amount,
            "currency": "usd",
            "recurring": {"interval": interval, "interval_count": 1},
            "product": {"id": "prod_basic", "name": "Basic"},
        }

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.unavailable:
            raise ProcessorUnavailable(f"Failed to {name}: connection error")

    def retrieve_payment_method(self, payment_method_id: str) -> Dict[str, Any]:
        self._enter("retrieve_payment_method")
        if payment_method_id not in self.payment_methods:
            raise ProcessorUnavailable(f"No such payment method: {payment_method_id}")
        return dict(self.payment_methods[payment_method_id])

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        self._enter("retrieve_subscription")
        return dict(self.subscriptions[subscription_id])

    def retrieve_price(self, price_id: str) -> Dict[str, Any]:
        self._enter("retrieve_price")
        return dict(self.prices[price_id])

    def list_payment_methods(self, customer_id: str) -> List[Dict[str, Any]]:
        self._enter("list_payment_methods")
        return [dict(method) for method in self.payment_methods.values() if method["customer"] == customer_id]

    def attach_payment_method(self, payment_method_id: str, customer_id: str) -> Dict[str, Any]:
        self._enter("attach_payment_method")
        method = self.payment_methods.get(payment_method_id)
        if method is None or method["customer"] not in (None, customer_id):
            raise ProcessorUnavailable(f"Failed to attach payment method: {payment_method_id}")
        method["customer"] = customer_id
        return dict(method)

    def update_payment_method(self, payment_method_id: str, **params: Any) -> Dict[str, Any]:
        self._enter("update_payment_method")
        method = self.payment_methods[payment_method_id]
        method["card"].update(params.get("card") or {})
        return dict(method)

    def detach_payment_method(self, payment_method_id: str) -> Dict[str, Any]:
        self._enter("detach_payment_method")
        method = self.payment_methods[payment_method_id]
        method["customer"] = None
        return dict(method)

    def set_customer_default_payment_method(self, customer_id: str, payment_method_id: Optional[str]) -> None:
        self._enter("set_customer_default_payment_method")
        self.customer_defaults[customer_id] = payment_method_id

    def list_invoices(self, customer_id: str, *, status: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        self._enter("list_invoices")
        matching = [
            invoice
            for invoice in self.invoices
            if invoice["customer"] == customer_id and (status is None or invoice.get("status") == status)
        ]
        return matching[:limit]

    def create_payment_intent(self, **params: Any) -> Dict[str, Any]:
        self._enter("create_payment_intent")
        if self.decline:
            raise PaymentDeclined("Your card was declined.", details={"code": "card_declined"})
        intent = {
            "id": self.intent_ids.pop(0) if self.intent_ids else f"pi_test_{next(self._ids)}",
            "status": self.intent_status,
            "amount": params["amount"],
            "currency": params["currency"],
            "customer": params["customer_id"],
            "payment_method": params["payment_method_id"],
            "metadata": params["metadata"],
            "latest_charge": {"receipt_url": "https://pay.stripe.com/receipts/test"},
        }
        self.intents.append(intent)
        return intent

    def create_subscription(self, **params: Any) -> Dict[str, Any]:
        self._enter("create_subscription")
        number = next(self._ids)
        price = self.prices.get(params["price_id"], {})
        subscription = {
            "id": f"sub_test_{number}",
            "customer": params["customer_id"],
            "status": self.subscription_status,
            "cancel_at_period_end": False,
            "default_payment_method": params["payment_method_id"],
            "metadata": params["metadata"],
            "items": {
                "data": [
                    {"id": f"si_test_{number}", "price": {"id": params["price_id"]}, "current_period_end": PERIOD_END}
                ]
            },
            "latest_invoice": {
                "id": f"in_test_{number}",
                "amount_paid": price.get("unit_amount", 0),
                "currency": "usd",
                "payment_intent": {"id": f"pi_sub_{number}", "status": "succeeded"},
            },
        }
        self.subscriptions[subscription["id"]] = subscription
        return subscription

    def update_subscription(self, subscription_id: str, **params: Any) -> Dict[str, Any]:
        self._enter("update_subscription")
        subscription = self.subscriptions[subscription_id]
        params.pop("expand", None)
        params.pop("proration_behavior", None)
        items = params.pop("items", None)
        if items:
            item = subscription["items"]["data"][0]
            assert item["id"] == items[0]["id"]
            item["price"] = {"id": items[0]["price"]}
            if self.proration_invoice is not None:
                subscription["latest_invoice"] = self.proration_invoice
        subscription.update(params)
        return dict(subscription)

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        self._enter("cancel_subscription")
        subscription = self.subscriptions.setdefault(subscription_id, {"id": subscription_id})
        subscription["status"] = "canceled"
        return dict(subscription)

    def delete_customer(self, customer_id: str) -> None:
        self._enter("delete_customer")
        self.deleted_customers.append(customer_id)


# Event payload builders ------------------------------------------------------

def make_event(event_type: str, obj: Dict[str, Any], event_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": event_id or f"evt_{event_type.replace('.', '_')}",
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "data": {"object": obj},
    }


def payment_intent_object(
    intent_id: str = "pi_test_1",
    amount: int = 2599,
    status: str = "succeeded",
    customer: Optional[str] = CUSTOMER_ID,
    metadata: Optional[Dict[str, str]] = None,
    error_message: Optional[str] = None,
) -> Dict[str, Any]:
    obj: Dict[str, Any] = {
        "id": intent_id,
        "object": "payment_intent",
        "amount": amount,
        "currency": "usd",
        "status": status,
        "customer": customer,
        "payment_method": CARD_ID,
        "metadata": metadata or {},
        "created": 1_700_000_000,
    }
    if error_message:
        obj["last_payment_error"] = {"message": error_message}
    return obj


def subscription_object(
    subscription_id: str = "sub_1",
    status: str = "active",
    period_end: int = PERIOD_END,
    cancel_at_period_end: bool = False,
    customer: str = CUSTOMER_ID,
    price_id: str = "price_basic",
) -> Dict[str, Any]:
    return {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "cancel_at_period_end": cancel_at_period_end,
        "items": {"data": [{"id": "si_1", "price": {"id": price_id}, "current_period_end": period_end}]},
        "metadata": {},
    }


def invoice_object(
    invoice_id: str = "in_1",
    subscription_id: Optional[str] = "sub_1",
    payment_intent: Optional[str] = None,
    amount_paid: int = 1999,
    period_end: int = PERIOD_END,
) -> Dict[str, Any]:
    return {
        "id": invoice_id,
        "object": "invoice",
        "customer": CUSTOMER_ID,
        "subscription": subscription_id,
        "payment_intent": payment_intent,
        "amount_paid": amount_paid,
        "currency": "usd",
        "created": 1_700_000_000,
        "lines": {"data": [{"period": {"start": period_end - 2_592_000, "end": period_end}}]},
    }


def event_from(event_type: str, obj: Dict[str, Any], event_id: Optional[str] = None):
    return parse_event(make_event(event_type, obj, event_id))


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe signs deliveries."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode("utf-8") + payload
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def encode_payload(event: Dict[str, Any]) -> bytes:
    return json.dumps(event).encode("utf-8")


def auth_headers(user_id: int, secret: str = JWT_SECRET) -> Dict[str, str]:
    token = jwt.encode({"user_id": user_id}, secret, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


# Service fixtures ------------------------------------------------------------

@pytest.fixture
def store(tmp_path) -> Iterator[SQLitePersistence]:
    persistence = SQLitePersistence(tmp_path / "paysync.db")
    yield persistence
    persistence.close()


@pytest.fixture
def processor() -> FakeProcessor:
    fake = FakeProcessor()
    fake.add_card(CARD_ID, CUSTOMER_ID)
    fake.add_price("price_basic")
    return fake


@pytest.fixture
def user(store: SQLitePersistence) -> User:
    return store.create_user("buyer@example.com", CUSTOMER_ID, default_payment_method_id=CARD_ID)


@pytest.fixture
def order_service(store: SQLitePersistence) -> OrderService:
    return OrderService(store)


@pytest.fixture
def ledger_service(store, order_service, processor) -> LedgerService:
    return LedgerService(store, IdempotencyGuard(store), order_service, processor)


@pytest.fixture
def subscription_service(store, processor, ledger_service) -> SubscriptionService:
    return SubscriptionService(store, processor, ledger_service)


@pytest.fixture
def resolver(store) -> CustomerResolver:
    return CustomerResolver(store)


@pytest.fixture
def dispatcher(resolver, ledger_service, order_service, subscription_service) -> WebhookDispatcher:
    return WebhookDispatcher(resolver, ledger_service, order_service, subscription_service)


@pytest.fixture
def checkout_service(store, processor, order_service, ledger_service) -> CheckoutService:
    return CheckoutService(store, processor, order_service, ledger_service)


@pytest.fixture
def account_service(store, processor) -> AccountService:
    return AccountService(store, processor, jwt_secret=JWT_SECRET)


@pytest.fixture
def card_service(store, processor) -> CardService:
    return CardService(store, processor)


@pytest.fixture
def invoice_service(store, processor) -> InvoiceService:
    return InvoiceService(store, processor)


# HTTP fixtures ---------------------------------------------------------------

@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    monkeypatch.setenv("JWT_SECRET", JWT_SECRET)
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "api.db"))
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
    monkeypatch.delenv("STRIPE_WEBHOOK_TOLERANCE", raising=False)
    return Settings()


@pytest.fixture
def client(settings: Settings, processor: FakeProcessor) -> Iterator[TestClient]:
    app = create_application(settings, processor=processor)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_store(client: TestClient) -> SQLitePersistence:
    return client.app.state.container.persistence


@pytest.fixture
def api_user(api_store: SQLitePersistence) -> User:
    return api_store.create_user("buyer@example.com", CUSTOMER_ID, default_payment_method_id=CARD_ID)
