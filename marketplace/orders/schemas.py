from pydantic import BaseModel, Field, field_validator
from typing import List
from decimal import Decimal

from marketplace.orders.cart import CartSummary
from marketplace.orders.models import CartLine, CustomerDetails, OrderView
from marketplace.shared.security_config import sanitize_input

class CartItemAdd(BaseModel):
    item_id: str
    quantity: int = Field(1, gt=0)

class CartItemUpdate(BaseModel):
    quantity: int

class CartResponse(BaseModel):
    lines: List[CartLine]
    total: Decimal
    count: int

class CartSummaryResponse(CartResponse):
    summary: CartSummary

class CheckoutRequest(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""

    @field_validator('name', 'email', 'address', 'city', 'state')
    def sanitize_fields(cls, v):
        return sanitize_input(v)

    def to_details(self) -> CustomerDetails:
        return CustomerDetails(**self.model_dump())

class CheckoutResponse(BaseModel):
    order_id: str

class OrderListResponse(BaseModel):
    orders: List[OrderView]
    status: str
