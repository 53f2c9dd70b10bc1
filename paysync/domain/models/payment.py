from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class PaymentStatus(str, Enum):
    SUCCEEDED = "succeeded"
    PROCESSING = "processing"
    FAILED = "failed"
    CANCELED = "canceled"


UNKNOWN_LAST4 = "unknown"


@dataclass(slots=True)
class PaymentRecord:
    """One payment attempt in a user's append-only payment history."""

    id: int
    user_id: int
    payment_intent_id: Optional[str]
    amount: int
    currency: str
    status: str
    invoice_id: Optional[str]
    error_message: Optional[str]
    payment_method_id: Optional[str]
    payment_method_last4: Optional[str]
    order_ref: Optional[str]
    subscription_id: Optional[str]
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "payment_intent_id": self.payment_intent_id,
            "invoice_id": self.invoice_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "error_message": self.error_message,
            "payment_method_id": self.payment_method_id,
            "payment_method_last4": self.payment_method_last4,
            "order_ref": self.order_ref,
            "subscription_id": self.subscription_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class SavedCard:
    """A card payment method attached to the user's Stripe customer."""

    id: str
    brand: Optional[str]
    last4: Optional[str]
    exp_month: Optional[int]
    exp_year: Optional[int]
    is_default: bool = False

    @classmethod
    def from_payment_method(cls, payment_method: Dict[str, Any], default_id: Optional[str]) -> "SavedCard":
        card = payment_method.get("card") or {}
        return cls(
            id=payment_method["id"],
            brand=card.get("brand"),
            last4=card.get("last4"),
            exp_month=card.get("exp_month"),
            exp_year=card.get("exp_year"),
            is_default=payment_method["id"] == default_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "brand": self.brand,
            "last4": self.last4,
            "exp_month": self.exp_month,
            "exp_year": self.exp_year,
            "is_default": self.is_default,
        }
