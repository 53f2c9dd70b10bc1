"""User domain model carrying the processor customer link and subscription mirror."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .subscription import SubscriptionDescriptor


@dataclass(slots=True)
class User:
    """
    Local user record.

    Attributes:
        id: Primary key
        email: User email address
        customer_id: Stripe customer ID
        default_payment_method_id: Payment method used when a request names none
        subscription: Mirror of the user's current Stripe subscription
        created_at: Account creation timestamp
        updated_at: Last update timestamp
    """

    id: int
    email: str
    customer_id: Optional[str]
    default_payment_method_id: Optional[str] = None
    subscription: SubscriptionDescriptor = field(default_factory=SubscriptionDescriptor)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def has_subscription(self) -> bool:
        return self.subscription.id is not None


@dataclass(slots=True)
class DeletionFeedback:
    id: int
    reason: str
    had_subscription: bool
    email: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reason": self.reason,
            "had_subscription": self.had_subscription,
            "email": self.email,
            "created_at": self.created_at.isoformat(),
        }
