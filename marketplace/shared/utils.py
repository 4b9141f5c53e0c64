from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Generic, TypeVar, Any
import uuid

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient
from passlib.context import CryptContext
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict
from jose import JWTError, jwt

from marketplace.shared.exceptions import UnauthorizedException

# --- Configuration ---
class Settings(BaseSettings):
    MONGO_URL: str = "mongodb://mongodb:27017"
    DATABASE_NAME: str = "marketplace_db"
    STORE_BACKEND: str = "mongo"  # mongo | memory
    SECRET_KEY: str = "secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REQUIRE_EMAIL_CONFIRMATION: bool = False
    SERVICE_FEE_RATE: Decimal = Decimal("0.05")
    TAX_RATE: Decimal = Decimal("0.18")
    LOGIN_RATE_LIMIT: str = "5/minute"

    model_config = SettingsConfigDict(env_file=".env")

settings = Settings()

# --- Database ---
def get_db_client(url: str = settings.MONGO_URL) -> AsyncIOMotorClient:
    return AsyncIOMotorClient(url, tz_aware=True)

def new_id() -> str:
    return str(ObjectId())

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def to_decimal(value: Any) -> Decimal:
    # Mongo hands prices back as floats
    return Decimal(str(value))

# --- Authentication ---
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None,
                        config: Settings = settings) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = utcnow() + expires_delta
    else:
        expire = utcnow() + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)

    if "jti" not in to_encode:
        to_encode.update({"jti": str(uuid.uuid4())})

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)

def verify_token(token: str, config: Settings = settings) -> dict:
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        raise UnauthorizedException("Could not validate credentials")

def token_expiry(token: str) -> Optional[datetime]:
    """The `exp` claim, read without checking the signature."""
    try:
        exp = jwt.get_unverified_claims(token).get("exp")
    except JWTError:
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc) if exp is not None else None

# --- Response Models ---
T = TypeVar("T")

class SuccessResponse(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None

class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: Optional[Any] = None

class HealthResponse(BaseModel):
    service: str
    status: str
    timestamp: datetime
    version: str
    database: Optional[str] = None
    dependencies: Optional[dict] = None
