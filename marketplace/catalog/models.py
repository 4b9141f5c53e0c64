from datetime import datetime
from typing import Optional
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field

from marketplace.shared.utils import utcnow

class CatalogItem(BaseModel):
    """A sellable event, owned by the vendor that published it."""
    id: Optional[str] = Field(None, alias="_id")
    owner_id: str
    vendor_name: Optional[str] = None
    name: str
    type: str = "event"
    description: str = ""
    unit_price: Decimal = Field(..., ge=0)
    capacity: int = Field(0, ge=0)
    date: Optional[str] = None
    location: Optional[str] = None
    image_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True)
