from fastapi import Depends, Request

from .container import ApplicationContainer


def get_container(request: Request) -> ApplicationContainer:
    container = getattr(request.app.state, "container", None)
    if not container:
        raise RuntimeError("Application container not initialised.")
    return container


def get_event_verifier(container: ApplicationContainer = Depends(get_container)):
    return container.event_verifier


def get_webhook_dispatcher(container: ApplicationContainer = Depends(get_container)):
    return container.webhook_dispatcher


def get_ledger_service(container: ApplicationContainer = Depends(get_container)):
    return container.ledger_service


def get_order_service(container: ApplicationContainer = Depends(get_container)):
    return container.order_service


def get_subscription_service(container: ApplicationContainer = Depends(get_container)):
    return container.subscription_service


def get_checkout_service(container: ApplicationContainer = Depends(get_container)):
    return container.checkout_service


def get_account_service(container: ApplicationContainer = Depends(get_container)):
    return container.account_service


def get_card_service(container: ApplicationContainer = Depends(get_container)):
    return container.card_service


def get_invoice_service(container: ApplicationContainer = Depends(get_container)):
    return container.invoice_service
