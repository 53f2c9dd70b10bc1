from dataclasses import dataclass

from ..application.services.account_service import AccountService
from ..application.services.card_service import CardService
from ..application.services.checkout_service import CheckoutService
from ..application.services.event_verifier import EventVerifier
from ..application.services.invoice_service import InvoiceService
from ..application.services.ledger_service import LedgerService
from ..application.services.order_service import OrderService
from ..application.services.subscription_service import SubscriptionService
from ..application.services.webhook_dispatcher import WebhookDispatcher
from ..domain.ports.persistence import PersistenceGateway
from ..services.stripe_service import StripeService
from .config import Settings


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    persistence: PersistenceGateway
    stripe_service: StripeService
    event_verifier: EventVerifier
    webhook_dispatcher: WebhookDispatcher
    ledger_service: LedgerService
    order_service: OrderService
    subscription_service: SubscriptionService
    checkout_service: CheckoutService
    account_service: AccountService
    card_service: CardService
    invoice_service: InvoiceService
