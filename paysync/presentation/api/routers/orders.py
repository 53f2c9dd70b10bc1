"""Checkout, order and payment history endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from ....application.services.checkout_service import CheckoutService
from ....application.services.ledger_service import LedgerService
from ....application.services.order_service import OrderService
from ....core.dependencies import get_checkout_service, get_ledger_service, get_order_service
from ....domain.exceptions import ReconciliationError
from ....domain.models import User
from ..dependencies import get_current_user, to_http_error
from ..schemas.checkout import CheckoutRequest

router = APIRouter(prefix="/api", tags=["Orders"])


@router.post("/checkout")
def checkout(
    payload: CheckoutRequest,
    user: User = Depends(get_current_user),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> Dict[str, Any]:
    """Charge the cart with a saved card and record the order."""
    try:
        order = checkout_service.checkout(
            user.id,
            [item.to_domain() for item in payload.items],
            payment_method_id=payload.payment_method_id,
            shipping_address=payload.shipping_address.to_domain() if payload.shipping_address else None,
            billing_address=payload.billing_address.to_domain() if payload.billing_address else None,
            currency=payload.currency,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc
    return {"message": "Order placed successfully", "order": order}


@router.get("/orders")
def list_orders(
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service),
) -> Dict[str, Any]:
    orders = [order.to_dict() for order in order_service.list_orders(user.id)]
    return {"items": orders, "count": len(orders)}


@router.get("/orders/{order_ref}")
def get_order(
    order_ref: str,
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service),
) -> Dict[str, Any]:
    try:
        return order_service.get_order(user.id, order_ref).to_dict()
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc


@router.get("/payments")
def payment_history(
    user: User = Depends(get_current_user),
    ledger_service: LedgerService = Depends(get_ledger_service),
) -> Dict[str, Any]:
    """Payment history, newest first."""
    records = [record.to_dict() for record in ledger_service.history(user.id)]
    return {"items": records, "count": len(records)}


@router.get("/payments/{record_id}")
def get_payment(
    record_id: int,
    user: User = Depends(get_current_user),
    ledger_service: LedgerService = Depends(get_ledger_service),
) -> Dict[str, Any]:
    record = ledger_service.get_record(user.id, record_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    return record.to_dict()
