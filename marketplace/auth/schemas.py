from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional

from marketplace.auth.models import Identity, Role
from marketplace.shared.security_config import validate_password_strength, sanitize_input

class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: Role = Role.USER
    full_name: str = Field(..., min_length=1)

    @field_validator('password')
    def password_complexity(cls, v):
        if not validate_password_strength(v):
            raise ValueError('Password must be at least 8 characters long and contain uppercase, lowercase, and numbers')
        return v

    @field_validator('full_name')
    def sanitize_name(cls, v):
        return sanitize_input(v)

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class EmailConfirm(BaseModel):
    token: str

class RoleUpdate(BaseModel):
    role: Role

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    identity: Identity

class SignUpResponse(BaseModel):
    identity: Identity
    requires_confirmation: bool
    access_token: Optional[str] = None
