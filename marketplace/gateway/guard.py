"""
Route gating by role.

Decisions are made fresh on every navigation, since the identity behind a
session can change at any time (logout, or a role change by an admin).
Role gating is for screens only; the data store enforces real access.
"""
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from pydantic import BaseModel

from marketplace.auth.models import Identity, Role

LOGIN_PATH = "/login"
UNAUTHORIZED_PATH = "/unauthorized"

# path -> roles allowed to enter it
PROTECTED_ROUTES: Dict[str, Tuple[Role, ...]] = {
    "/admin": (Role.ADMIN,),
    "/vendor": (Role.VENDOR,),
    "/user": (Role.USER,),
    "/products": (Role.USER, Role.VENDOR),
    "/cart": (Role.USER,),
    "/checkout": (Role.USER,),
    "/orders": (Role.USER, Role.VENDOR, Role.ADMIN),
    "/membership": (Role.USER, Role.ADMIN),
}

# Public screens that a signed-in identity is bounced away from
GUEST_ONLY_ROUTES = ("/login", "/signup")


class Decision(str, Enum):
    LOADING = "loading"
    ALLOW = "allow"
    REDIRECT_LOGIN = "redirect_login"
    REDIRECT_UNAUTHORIZED = "redirect_unauthorized"
    # Only from navigate: a signed-in identity on a guest-only screen
    REDIRECT_HOME = "redirect_home"


class GuardResult(BaseModel):
    decision: Decision
    requested_path: str
    redirect_to: Optional[str] = None


def home_path(identity: Identity) -> str:
    return f"/{identity.role.value}"


def authorize(identity: Optional[Identity], requested_path: str,
              allowed_roles: Optional[Iterable[Role]] = None,
              pending: bool = False) -> GuardResult:
    if pending:
        return GuardResult(decision=Decision.LOADING, requested_path=requested_path)
    if identity is None:
        return GuardResult(decision=Decision.REDIRECT_LOGIN,
                           requested_path=requested_path, redirect_to=LOGIN_PATH)
    if allowed_roles is not None and identity.role not in tuple(allowed_roles):
        return GuardResult(decision=Decision.REDIRECT_UNAUTHORIZED,
                           requested_path=requested_path, redirect_to=UNAUTHORIZED_PATH)
    return GuardResult(decision=Decision.ALLOW, requested_path=requested_path)


def navigate(identity: Optional[Identity], path: str, pending: bool = False) -> GuardResult:
    """Apply the application's route table to a requested path."""
    # Screen paths match case-insensitively, as the client router does
    path = "/" + path.strip("/").lower()

    if path in PROTECTED_ROUTES:
        return authorize(identity, path, PROTECTED_ROUTES[path], pending=pending)

    if pending:
        return GuardResult(decision=Decision.LOADING, requested_path=path)
    if path == "/":
        return GuardResult(decision=Decision.REDIRECT_LOGIN, requested_path=path, redirect_to=LOGIN_PATH)
    if path in GUEST_ONLY_ROUTES and identity is not None:
        return GuardResult(decision=Decision.REDIRECT_HOME, requested_path=path, redirect_to=home_path(identity))
    return GuardResult(decision=Decision.ALLOW, requested_path=path)
