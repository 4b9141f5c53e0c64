from typing import Optional

from fastapi import HTTPException, status


class AppException(HTTPException):
    def __init__(
        self,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        detail: str = "An error occurred",
        headers: Optional[dict] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def __str__(self) -> str:
        return str(self.detail)

class NotFoundException(AppException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

class UnauthorizedException(AppException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"}
        )

class ForbiddenException(AppException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

class AuthError(AppException):
    """Rejected by the auth backend. The message is shown to the caller as-is."""
    def __init__(self, detail: str, status_code: int = status.HTTP_401_UNAUTHORIZED):
        super().__init__(status_code=status_code, detail=detail)

# --- Store ---
class StoreError(AppException):
    """A read or write against the backing store failed."""
    def __init__(self, detail: str = "Store operation failed"):
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)

class StoreWriteError(StoreError):
    def __init__(self, detail: str = "Store write failed"):
        super().__init__(detail)
        # Set when the cleanup after this failure also failed
        self.compensation_error: Optional["CompensationError"] = None

class CompensationError(StoreError):
    def __init__(self, detail: str = "Compensating delete failed"):
        super().__init__(detail)

class VisibilityFetchError(StoreError):
    def __init__(self, detail: str = "Could not load orders"):
        super().__init__(detail)

# --- Checkout ---
class EmptyCartError(AppException):
    def __init__(self, detail: str = "Cart is empty"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class CheckoutInProgressError(AppException):
    def __init__(self, detail: str = "A checkout is already in progress for this session"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)
