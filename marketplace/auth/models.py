from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from marketplace.shared.utils import utcnow

class Role(str, Enum):
    USER = "user"
    VENDOR = "vendor"
    ADMIN = "admin"

class Identity(BaseModel):
    """The signed-in principal as the rest of the system sees it."""
    id: str
    email: str
    role: Role
    display_name: str

    model_config = ConfigDict(frozen=True)

class UserDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    email: EmailStr
    password_hash: str
    role: Role
    name: str
    confirmed: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    def to_identity(self) -> Identity:
        return Identity(
            id=self.id,
            email=self.email,
            role=self.role,
            display_name=self.name or self.email,
        )

class RevokedTokenDB(BaseModel):
    jti: str
    exp: datetime
