"""Read-only view of a user's Stripe invoices."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ...domain.exceptions import UserNotFound
from ...domain.models import User
from ...domain.models.events import invoice_subscription_id, object_id
from ...domain.ports.persistence import UserRepository
from ...domain.ports.processor import PaymentProcessor


def _iso(timestamp: Any) -> Optional[str]:
    if not timestamp:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).isoformat()


def _line(line: Dict[str, Any]) -> Dict[str, Any]:
    period = line.get("period") or {}
    return {
        "description": line.get("description"),
        "amount": line.get("amount"),
        "quantity": line.get("quantity"),
        "period_start": _iso(period.get("start")),
        "period_end": _iso(period.get("end")),
        "proration": bool(line.get("proration", False)),
    }


def summarize_invoice(invoice: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a Stripe invoice. Amounts stay in minor units."""
    subscription_id = invoice_subscription_id(invoice)
    return {
        "id": invoice["id"],
        "number": invoice.get("number"),
        "description": invoice.get("description"),
        "status": invoice.get("status"),
        "amount_due": invoice.get("amount_due", 0),
        "amount_paid": invoice.get("amount_paid", 0),
        "amount_remaining": invoice.get("amount_remaining", 0),
        "currency": invoice.get("currency"),
        "created": _iso(invoice.get("created")),
        "due_date": _iso(invoice.get("due_date")),
        "period_start": _iso(invoice.get("period_start")),
        "period_end": _iso(invoice.get("period_end")),
        "subscription_id": subscription_id,
        "payment_intent_id": object_id(invoice.get("payment_intent")),
        "hosted_invoice_url": invoice.get("hosted_invoice_url"),
        "invoice_pdf": invoice.get("invoice_pdf"),
        "is_subscription": subscription_id is not None,
        "lines": [_line(line) for line in (invoice.get("lines") or {}).get("data") or []],
    }


class InvoiceService:
    def __init__(self, users: UserRepository, processor: PaymentProcessor) -> None:
        self.users = users
        self.processor = processor

    def list_invoices(self, user_id: int) -> List[Dict[str, Any]]:
        """Most recent invoices of the user's customer, newest first."""
        user = self._get_user(user_id)
        if not user.customer_id:
            return []
        return [summarize_invoice(invoice) for invoice in self.processor.list_invoices(user.customer_id)]

    def unpaid_invoices(self, user_id: int) -> Dict[str, Any]:
        """Open invoices with the total still due."""
        user = self._get_user(user_id)
        invoices: List[Dict[str, Any]] = []
        if user.customer_id:
            invoices = [
                summarize_invoice(invoice)
                for invoice in self.processor.list_invoices(user.customer_id, status="open", limit=10)
            ]
        return {
            "count": len(invoices),
            "total_amount_due": sum(invoice["amount_due"] or 0 for invoice in invoices),
            "currency": invoices[0]["currency"] if invoices else "usd",
            "invoices": invoices,
        }

    def _get_user(self, user_id: int) -> User:
        user = self.users.get_user_by_id(user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        return user
