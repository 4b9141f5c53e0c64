from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from marketplace.auth.models import Identity, Role
from marketplace.auth.session import AuthBackend, Session, SessionRegistry
from marketplace.auth.store import UserStore
from marketplace.catalog.store import CatalogStore
from marketplace.gateway.guard import Decision, authorize
from marketplace.orders.checkout import CheckoutOrchestrator
from marketplace.orders.store import OrderStore
from marketplace.orders.visibility import OrderVisibilityEngine
from marketplace.shared.exceptions import ForbiddenException, UnauthorizedException
from marketplace.shared.utils import Settings


@dataclass
class Services:
    config: Settings
    users: UserStore
    catalog: CatalogStore
    orders: OrderStore
    auth: AuthBackend
    sessions: SessionRegistry
    checkout: CheckoutOrchestrator
    visibility: OrderVisibilityEngine
    mongodb_client: Optional[object] = None


def build_services(config: Settings, users, catalog, orders, mongodb_client=None) -> Services:
    auth = AuthBackend(users, config)
    return Services(
        config=config,
        users=users,
        catalog=catalog,
        orders=orders,
        auth=auth,
        sessions=SessionRegistry(auth),
        checkout=CheckoutOrchestrator(orders),
        visibility=OrderVisibilityEngine(catalog, orders),
        mongodb_client=mongodb_client,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, param = authorization.partition(" ")
    if scheme.lower() != "bearer" or not param:
        raise UnauthorizedException("Invalid authentication credentials")
    return param


async def get_session(
    request: Request,
    authorization: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> Session:
    token = bearer_token(authorization)
    if token is None:
        session = Session(services.auth)
        await session.restore()
        session.close()
        return session
    session = await services.sessions.resolve(token)
    identity = session.get_current_identity()
    if identity is not None:
        request.state.user_id = identity.id
    return session


def require_roles(*roles: Role):
    """Dependency gate: 401 without a session, 403 for a role outside ``roles``."""
    async def guard(request: Request, session: Session = Depends(get_session)) -> Identity:
        identity = session.get_current_identity()
        result = authorize(identity, request.url.path, roles or None, pending=session.pending)
        if result.decision == Decision.REDIRECT_LOGIN:
            raise UnauthorizedException("Not authenticated")
        if result.decision == Decision.REDIRECT_UNAUTHORIZED:
            raise ForbiddenException("You don't have permission to access this resource")
        return identity
    return guard
