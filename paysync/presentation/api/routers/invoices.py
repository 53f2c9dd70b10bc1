"""API router for the current user's Stripe invoices."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ....application.services.invoice_service import InvoiceService
from ....core.dependencies import get_invoice_service
from ....domain.exceptions import ReconciliationError
from ....domain.models import User
from ..dependencies import get_current_user, to_http_error

router = APIRouter(prefix="/api/invoices", tags=["Invoices"])


@router.get("")
def list_invoices(
    user: User = Depends(get_current_user),
    invoice_service: InvoiceService = Depends(get_invoice_service),
) -> Dict[str, Any]:
    try:
        invoices = invoice_service.list_invoices(user.id)
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc
    return {"count": len(invoices), "invoices": invoices}


@router.get("/unpaid")
def unpaid_invoices(
    user: User = Depends(get_current_user),
    invoice_service: InvoiceService = Depends(get_invoice_service),
) -> Dict[str, Any]:
    """Open invoices and the total amount still due, in minor units."""
    try:
        return invoice_service.unpaid_invoices(user.id)
    except ReconciliationError as exc:
        raise to_http_error(exc) from exc
