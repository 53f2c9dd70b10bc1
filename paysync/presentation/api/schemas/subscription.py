"""Pydantic schemas for subscription endpoints."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class CreateSubscriptionRequest(BaseModel):
    """Request schema for subscribing to a price."""

    price_id: str = Field(..., min_length=1)
    payment_method_id: Optional[str] = None
    trial_days: Optional[int] = Field(default=None, ge=0, le=730)


class CancelSubscriptionRequest(BaseModel):
    immediate: bool = Field(default=False, description="Cancel now instead of at period end")


class ChangePlanRequest(BaseModel):
    """Request schema for moving a subscription to another price."""

    price_id: str = Field(..., min_length=1)
    proration_behavior: Literal["create_prorations", "none", "always_invoice"] = "create_prorations"


class UpdateSubscriptionPaymentRequest(BaseModel):
    payment_method_id: str = Field(..., min_length=1)
