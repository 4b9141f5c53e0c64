from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field

from marketplace.shared.utils import utcnow

class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class CartLine(BaseModel):
    item_id: str
    quantity: int = Field(..., ge=1)
    unit_price_snapshot: Decimal  # price at add-to-cart time
    name: str
    vendor_label: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price_snapshot * self.quantity

class CustomerDetails(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""

class OrderDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    buyer_id: str
    status: OrderStatus = OrderStatus.CONFIRMED
    total_price: Decimal
    customer_details: CustomerDetails
    created_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(populate_by_name=True)

class OrderLineDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    order_id: str
    item_id: str
    quantity: int = Field(..., ge=1)
    unit_price_snapshot: Decimal

    model_config = ConfigDict(populate_by_name=True)

class OrderLineView(BaseModel):
    """An order line joined with the event it refers to."""
    id: str
    order_id: str
    item_id: str
    quantity: int
    unit_price_snapshot: Decimal
    # None once the event has been deleted
    item_name: Optional[str] = None
    item_owner_id: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price_snapshot * self.quantity

class OrderView(BaseModel):
    id: str
    buyer_id: str
    status: OrderStatus
    total_price: Decimal
    customer_details: CustomerDetails
    created_at: datetime
    lines: List[OrderLineView] = []
