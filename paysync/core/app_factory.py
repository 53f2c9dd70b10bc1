from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging
from ..application.services.account_service import AccountService
from ..application.services.card_service import CardService
from ..application.services.checkout_service import CheckoutService
from ..application.services.customer_resolver import CustomerResolver
from ..application.services.event_verifier import EventVerifier
from ..application.services.idempotency import IdempotencyGuard
from ..application.services.invoice_service import InvoiceService
from ..application.services.ledger_service import LedgerService
from ..application.services.order_service import OrderService
from ..application.services.subscription_service import SubscriptionService
from ..application.services.webhook_dispatcher import WebhookDispatcher
from ..domain.ports.processor import PaymentProcessor
from ..infrastructure.persistence.sqlite import SQLitePersistence
from ..presentation.api.routers import account as account_router
from ..presentation.api.routers import cards as cards_router
from ..presentation.api.routers import invoices as invoices_router
from ..presentation.api.routers import orders as orders_router
from ..presentation.api.routers import subscriptions as subscriptions_router
from ..presentation.api.routers import webhook as webhook_router
from ..services.stripe_service import StripeService

logger = logging.getLogger(__name__)


def create_application(
    settings: Optional[Settings] = None,
    processor: Optional[PaymentProcessor] = None,
) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(title="Paysync", lifespan=_create_lifespan(settings, processor))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(webhook_router.router)
    app.include_router(orders_router.router)
    app.include_router(subscriptions_router.router)
    app.include_router(cards_router.router)
    app.include_router(invoices_router.router)
    app.include_router(account_router.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        container: ApplicationContainer = app.state.container  # type: ignore[attr-defined]
        return {
            "ok": True,
            "stripe": container.stripe_service.is_configured(),
            "webhook_secret": bool(container.settings.stripe_webhook_secret),
        }

    return app


def build_container(
    settings: Settings,
    persistence: SQLitePersistence,
    processor: Optional[PaymentProcessor] = None,
) -> ApplicationContainer:
    stripe_service = StripeService.from_api_key(settings.stripe_secret_key)
    processor = processor or stripe_service

    order_service = OrderService(persistence)
    ledger_service = LedgerService(
        persistence,
        IdempotencyGuard(persistence),
        order_service,
        processor,
    )
    subscription_service = SubscriptionService(persistence, processor, ledger_service)
    webhook_dispatcher = WebhookDispatcher(
        CustomerResolver(persistence),
        ledger_service,
        order_service,
        subscription_service,
    )
    checkout_service = CheckoutService(
        persistence,
        processor,
        order_service,
        ledger_service,
        default_currency=settings.default_currency,
    )
    account_service = AccountService(
        persistence,
        processor,
        jwt_secret=settings.jwt_secret,
        jwt_algorithm=settings.jwt_algorithm,
    )

    return ApplicationContainer(
        settings=settings,
        persistence=persistence,
        stripe_service=stripe_service,
        event_verifier=EventVerifier(settings.stripe_webhook_secret, settings.stripe_webhook_tolerance),
        webhook_dispatcher=webhook_dispatcher,
        ledger_service=ledger_service,
        order_service=order_service,
        subscription_service=subscription_service,
        checkout_service=checkout_service,
        account_service=account_service,
        card_service=CardService(persistence, processor),
        invoice_service=InvoiceService(persistence, processor),
    )


def _create_lifespan(settings: Settings, processor: Optional[PaymentProcessor]):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        persistence = SQLitePersistence(settings.database_path)
        app.state.container = build_container(settings, persistence, processor)  # type: ignore[attr-defined]
        if not settings.stripe_webhook_secret:
            logger.warning("STRIPE_WEBHOOK_SECRET not set; webhook deliveries will be rejected")

        try:
            yield
        finally:
            persistence.close()

    return lifespan
