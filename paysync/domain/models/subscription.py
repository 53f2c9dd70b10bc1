"""Subscription descriptor mirrored from Stripe onto the user record."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class SubscriptionStatus(str, Enum):
    """Stripe subscription states. No local-only states exist."""

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"
    PAUSED = "paused"


ACTIVE_STATUSES = frozenset({SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value})


@dataclass(slots=True)
class SubscriptionDescriptor:
    """
    Subscription state embedded in the user record.

    Attributes:
        id: Stripe subscription ID
        status: Stripe subscription status, None when the user never subscribed
        price_id: Stripe price ID of the first subscription item
        current_period_end: End of the current billing period
        cancel_at_period_end: Whether the subscription ends with the current period
        billing: Price details captured when the subscription was created
    """

    id: Optional[str] = None
    status: Optional[str] = None
    price_id: Optional[str] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    billing: Dict[str, Any] = field(default_factory=dict)

    def is_active(self) -> bool:
        """Check if subscription is currently active."""
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "price_id": self.price_id,
            "current_period_end": (
                self.current_period_end.isoformat() if self.current_period_end else None
            ),
            "cancel_at_period_end": self.cancel_at_period_end,
            "billing": dict(self.billing),
        }
