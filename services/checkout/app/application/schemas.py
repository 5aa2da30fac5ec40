from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Optional

NANOS_PER_UNIT = 1_000_000_000

class Money(BaseModel):
    """Fixed-point amount: whole units plus nanos (10^-9 of a unit)."""
    units: int = 0
    nanos: int = Field(0, gt=-NANOS_PER_UNIT, lt=NANOS_PER_UNIT)
    currency_code: Optional[str] = None

    @model_validator(mode="after")
    def _check_signs(self):
        if (self.units > 0 and self.nanos < 0) or (self.units < 0 and self.nanos > 0):
            raise ValueError("units and nanos must have the same sign")
        return self

class Address(BaseModel):
    street_address: str
    city: str
    state: str
    country: str
    zip_code: str

class CartItem(BaseModel):
    product_id: str
    quantity: int

class OrderItem(BaseModel):
    item: CartItem
    cost: Money

class PlaceOrderRequest(BaseModel):
    user_id: str
    user_currency: str
    email: str
    address: Address

class OrderResult(BaseModel):
    order_id: str
    shipping_tracking_id: str
    shipping_cost: Money
    shipping_address: Address
    items: list[OrderItem] = []

class Order(BaseModel):
    order_id: str
    user_id: str
    user_email: str
    user_currency: str
    shipping_tracking_id: str
    total_amount: Money
    shipping_cost: Money
    shipping_address: Address
    items: list[OrderItem]
    created_at: datetime
    updated_at: datetime

class RecordOrder(BaseModel):
    """Payload the checkout flow posts once an order has been placed."""
    request: PlaceOrderRequest
    result: OrderResult
    total_amount: Money

class RecordOrderResponse(BaseModel):
    order_id: str
    persisted: bool
