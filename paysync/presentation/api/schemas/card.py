"""Pydantic schemas for saved-card endpoints."""

from pydantic import BaseModel, Field


class AddCardRequest(BaseModel):
    """Request schema for attaching a card tokenised with Stripe.js."""

    payment_method_id: str = Field(..., min_length=1, description="Stripe payment method ID (pm_...)")
    make_default: bool = Field(default=False, description="Use this card when a request names none")


class UpdateCardRequest(BaseModel):
    exp_month: int = Field(..., ge=1, le=12)
    exp_year: int = Field(..., ge=2000, le=2100)
