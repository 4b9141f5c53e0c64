"""
Identity and per-session state.

``AuthBackend`` is the account collaborator: sign-up, sign-in, sign-out,
session lookup from a bearer token, and change notifications. ``Session`` is
the context object a single client works through. It owns the identity, the
cart and the checkout latch, and lives from login until logout.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from marketplace.auth.models import Identity, Role, UserDB
from marketplace.auth.store import UserStore
from marketplace.orders.cart import CartStore
from marketplace.shared.exceptions import AppException, AuthError, NotFoundException, UnauthorizedException
from marketplace.shared.utils import (
    Settings, settings, create_access_token, verify_token, token_expiry,
    get_password_hash, verify_password, utcnow,
)

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[Identity]], None]
BackendListener = Callable[[str, Optional[Identity]], None]
ConfirmationSender = Callable[[Identity, str], None]

CONFIRM_PURPOSE = "confirm_email"
CONFIRM_TOKEN_TTL = timedelta(hours=24)


def log_confirmation(identity: Identity, token: str):
    # No mail transport here; the token is what the emailed link would carry
    logger.info("Confirmation link issued", extra={"user_id": identity.id})


class SignUpResult(BaseModel):
    identity: Identity
    requires_confirmation: bool


class AuthBackend:
    def __init__(self, users: UserStore, config: Settings = settings,
                 send_confirmation: Optional[ConfirmationSender] = None):
        self.users = users
        self.config = config
        self.send_confirmation = send_confirmation or log_confirmation
        self._listeners: List[BackendListener] = []

    def subscribe(self, listener: BackendListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _publish(self, user_id: str, identity: Optional[Identity]):
        for listener in list(self._listeners):
            listener(user_id, identity)

    def _issue_token(self, user: UserDB) -> str:
        return create_access_token(
            data={"sub": user.id, "role": user.role, "email": user.email, "name": user.name},
            config=self.config,
        )

    def _issue_confirmation(self, user: UserDB) -> str:
        return create_access_token(
            data={"sub": user.id, "purpose": CONFIRM_PURPOSE},
            expires_delta=CONFIRM_TOKEN_TTL,
            config=self.config,
        )

    async def sign_up(self, name: str, email: str, password: str, role: Role) -> Tuple[Identity, Optional[str]]:
        if role == Role.ADMIN:
            # Admin is only ever granted through set_role
            raise AuthError("Admin accounts cannot be self-registered", status_code=403)
        if await self.users.find_by_email(email):
            raise AuthError("Email already registered", status_code=400)

        user = await self.users.insert(UserDB(
            email=email.lower(),
            password_hash=get_password_hash(password),
            role=role,
            name=name,
            confirmed=not self.config.REQUIRE_EMAIL_CONFIRMATION,
        ))
        logger.info("Account created", extra={"user_id": user.id, "role": user.role})

        if not user.confirmed:
            identity = user.to_identity()
            self.send_confirmation(identity, self._issue_confirmation(user))
            return identity, None
        return user.to_identity(), self._issue_token(user)

    async def confirm_email(self, token: str) -> Identity:
        payload = verify_token(token, self.config)
        if payload.get("purpose") != CONFIRM_PURPOSE:
            raise UnauthorizedException("Invalid confirmation token")
        user = await self.users.update(payload.get("sub"), {"confirmed": True})
        if user is None:
            raise NotFoundException("User not found")
        return user.to_identity()

    async def sign_in(self, email: str, password: str) -> Tuple[Identity, str]:
        user = await self.users.find_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            raise AuthError("Invalid login credentials")
        if not user.confirmed:
            raise AuthError("Email not confirmed")
        return user.to_identity(), self._issue_token(user)

    async def sign_out(self, token: str) -> None:
        payload = verify_token(token, self.config)
        if "jti" in payload:
            await self.users.revoke(
                payload["jti"], datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
            )

    async def get_session(self, token: str) -> Optional[Identity]:
        """Resolve a bearer token to the account's current identity, or None."""
        try:
            payload = verify_token(token, self.config)
        except AppException:
            return None
        if payload.get("purpose") is not None:
            return None
        if "jti" in payload and await self.users.is_revoked(payload["jti"]):
            return None
        user = await self.users.get(payload.get("sub"))
        if user is None or not user.confirmed:
            return None
        return user.to_identity()

    async def set_role(self, user_id: str, role: Role) -> Identity:
        user = await self.users.update(user_id, {"role": role.value})
        if user is None:
            raise NotFoundException("User not found")
        identity = user.to_identity()
        logger.info("Role changed", extra={"user_id": user_id, "role": role.value})
        self._publish(user_id, identity)
        return identity


class Session:
    def __init__(self, auth: AuthBackend, token: Optional[str] = None):
        self.auth = auth
        self.token = token
        self.cart = CartStore()
        self.checkout_pending = False
        # True until the first identity resolution has finished
        self.pending = True
        self._identity: Optional[Identity] = None
        self._listeners: List[IdentityListener] = []
        self._generation = 0
        self._unsubscribe_backend = auth.subscribe(self._on_backend_change)

    def get_current_identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def generation(self) -> int:
        return self._generation

    def subscribe(self, on_change: IdentityListener) -> Callable[[], None]:
        """Register for identity changes. Fires right away once resolved."""
        self._listeners.append(on_change)
        if not self.pending:
            on_change(self._identity)

        def unsubscribe():
            if on_change in self._listeners:
                self._listeners.remove(on_change)
        return unsubscribe

    def _set_identity(self, identity: Optional[Identity], force: bool = False):
        previous = self._identity
        self.pending = False
        if identity == previous and not force:
            return
        self._identity = identity
        self._generation += 1
        if identity is None or (previous is not None and previous.id != identity.id):
            self.cart.clear()
        for listener in list(self._listeners):
            listener(identity)

    def _on_backend_change(self, user_id: str, identity: Optional[Identity]):
        if self._identity is not None and self._identity.id == user_id:
            if identity is None:
                self.token = None
            self._set_identity(identity)

    async def restore(self) -> Optional[Identity]:
        identity = None
        if self.token:
            identity = await self.auth.get_session(self.token)
            if identity is None:
                self.token = None
        self._set_identity(identity, force=self.pending)
        return identity

    async def login(self, email: str, password: str) -> None:
        identity, token = await self.auth.sign_in(email, password)
        self.token = token
        self._set_identity(identity)

    async def sign_up(self, name: str, email: str, password: str, role: Role) -> SignUpResult:
        identity, token = await self.auth.sign_up(name, email, password, role)
        if token is not None:
            self.token = token
            self._set_identity(identity)
        return SignUpResult(identity=identity, requires_confirmation=token is None)

    async def logout(self) -> None:
        token, self.token = self.token, None
        identity = self._identity
        try:
            if token:
                await self.auth.sign_out(token)
        except AppException as e:
            logger.warning("Sign-out failed, clearing local session anyway",
                           extra={"user_id": identity.id if identity else None, "error": str(e)})
        finally:
            self._set_identity(None)

    def abandon_fetches(self):
        """Drop the results of any fetch still in flight, e.g. when a view goes away."""
        self._generation += 1

    async def load_orders(self, engine, status: str = "all"):
        """Run a visibility fetch; returns None if the result went stale meanwhile."""
        identity = self._identity
        if identity is None:
            return None
        started = self._generation
        result = await engine.visible_orders(identity, status)
        if self._generation != started:
            logger.info("Discarding stale order fetch", extra={"user_id": identity.id})
            return None
        return result

    def close(self):
        self._unsubscribe_backend()


class SessionRegistry:
    """Live sessions keyed by bearer token, dropped once the token expires."""

    def __init__(self, auth: AuthBackend):
        self.auth = auth
        self._sessions: Dict[str, Session] = {}
        self._expires: Dict[str, datetime] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def _track(self, token: str, session: Session):
        self._sessions[token] = session
        exp = token_expiry(token)
        if exp is not None:
            self._expires[token] = exp

    def register(self, session: Session):
        if session.token:
            self._track(session.token, session)
        self.prune()

    def get(self, token: str) -> Optional[Session]:
        return self._sessions.get(token)

    def prune(self, now: Optional[datetime] = None) -> int:
        """Close sessions whose token has expired. Returns how many went."""
        now = now or utcnow()
        expired = [token for token, exp in self._expires.items() if exp <= now]
        for token in expired:
            self.discard(token)
        return len(expired)

    async def resolve(self, token: str) -> Session:
        self.prune()
        session = self._sessions.get(token)
        if session is None:
            session = Session(self.auth, token)
        # Re-checked on every request so revocations and role changes apply
        identity = await session.restore()
        if identity is None:
            self.discard(token)
            session.close()
        else:
            self._track(token, session)
        return session

    def discard(self, token: str):
        self._expires.pop(token, None)
        session = self._sessions.pop(token, None)
        if session is not None:
            session.close()
