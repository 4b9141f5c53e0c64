from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from decimal import Decimal
from datetime import datetime
from marketplace.shared.security_config import sanitize_input

class EventCreate(BaseModel):
    name: str = Field(..., min_length=1)
    type: str = "event"
    description: str = ""
    unit_price: Decimal = Field(..., ge=0)
    capacity: int = Field(0, ge=0)
    date: Optional[str] = None
    location: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator('name', 'type', 'description', 'location', 'image_url')
    def sanitize_fields(cls, v):
        return sanitize_input(v)

class EventUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    unit_price: Optional[Decimal] = Field(None, ge=0)
    capacity: Optional[int] = Field(None, ge=0)
    date: Optional[str] = None
    location: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator('name', 'type', 'description', 'location', 'image_url')
    def sanitize_fields(cls, v):
        return sanitize_input(v)

# Not derived from EventCreate: stored text is already escaped
class EventResponse(BaseModel):
    id: str
    owner_id: str
    name: str
    type: str
    description: str
    unit_price: Decimal
    capacity: int
    date: Optional[str] = None
    location: Optional[str] = None
    image_url: Optional[str] = None
    vendor_name: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

class EventListResponse(BaseModel):
    events: List[EventResponse]
    total: int
