"""Pydantic schemas for checkout and order endpoints."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from ....domain.models import Address, CartItem


class CartItemRequest(BaseModel):
    name: str = Field(default="Product", max_length=200)
    price: Decimal = Field(..., gt=0, description="Unit price in major currency units")
    quantity: int = Field(..., gt=0)
    description: str = Field(default="", max_length=500)
    product_id: str = Field(default="", max_length=120)

    def to_domain(self) -> CartItem:
        return CartItem(
            name=self.name,
            price=self.price,
            quantity=self.quantity,
            description=self.description,
            product_id=self.product_id,
        )


class AddressRequest(BaseModel):
    name: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = Field(default=None, max_length=2)
    phone: Optional[str] = None

    def to_domain(self) -> Address:
        return Address(**self.model_dump())


class CheckoutRequest(BaseModel):
    """Request schema for placing an order."""

    items: List[CartItemRequest] = Field(..., min_length=1)
    payment_method_id: Optional[str] = Field(
        default=None, description="Saved card to charge; the default card is used when omitted"
    )
    shipping_address: Optional[AddressRequest] = None
    billing_address: Optional[AddressRequest] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
