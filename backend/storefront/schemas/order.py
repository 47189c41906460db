from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Address(BaseModel):
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    street: str
    city: str
    state: Optional[str] = None
    zip_code: str
    country: str


class OrderLineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    product_id: str
    name: Optional[str] = None
    size: str
    color: str
    image: Optional[str] = None
    unit_price_cents: int
    quantity: int
    line_total_cents: int


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    order_number: str
    user_id: str
    status: str
    subtotal_cents: int
    tax_cents: int
    shipping_cents: int
    discount_cents: int
    total_cents: int
    shipping_address: dict
    billing_address: dict
    payment_reference: str
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    lines: List[OrderLineOut] = Field(default_factory=list)


class CommitOrderIn(BaseModel):
    user_id: str
    shipping_address: Address
    billing_address: Address
    payment_reference: str = Field(..., min_length=1)
    discount_cents: int = Field(0, ge=0)
    notes: Optional[str] = None


class UpdateOrderStatusIn(BaseModel):
    status: str
    tracking_number: Optional[str] = None
    reason: Optional[str] = None
