from fastapi import APIRouter, Depends, Request

from marketplace.auth.models import Identity, Role
from marketplace.auth.schemas import EmailConfirm, RoleUpdate, SignUpResponse, Token, UserLogin, UserRegister
from marketplace.auth.session import Session
from marketplace.deps import Services, get_services, get_session, require_roles
from marketplace.shared.exceptions import AppException, UnauthorizedException
from marketplace.shared.security_config import limiter
from marketplace.shared.utils import SuccessResponse, settings

router = APIRouter(tags=["auth"])


@router.post("/auth/signup", response_model=SuccessResponse[SignUpResponse])
async def signup(user: UserRegister, services: Services = Depends(get_services)):
    session = Session(services.auth)
    result = await session.sign_up(user.full_name, user.email, user.password, user.role)
    if result.requires_confirmation:
        session.close()
        message = "Check your email to confirm your account"
    else:
        services.sessions.register(session)
        message = "User registered successfully"
    return SuccessResponse(data=SignUpResponse(
        identity=result.identity,
        requires_confirmation=result.requires_confirmation,
        access_token=session.token,
    ), message=message)


@router.post("/auth/login", response_model=SuccessResponse[Token])
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(user_credentials: UserLogin, request: Request, services: Services = Depends(get_services)):
    session = Session(services.auth)
    try:
        await session.login(user_credentials.email, user_credentials.password)
    except AppException:
        session.close()
        raise
    services.sessions.register(session)
    return SuccessResponse(data=Token(
        access_token=session.token,
        identity=session.get_current_identity(),
    ))


@router.post("/auth/logout", response_model=SuccessResponse[dict])
async def logout(session: Session = Depends(get_session), services: Services = Depends(get_services)):
    token = session.token
    if session.get_current_identity() is None:
        raise UnauthorizedException("Not authenticated")
    await session.logout()
    services.sessions.discard(token)
    return SuccessResponse(message="Logged out successfully")


@router.get("/auth/me", response_model=SuccessResponse[Identity])
async def me(identity: Identity = Depends(require_roles())):
    return SuccessResponse(data=identity)


@router.post("/auth/confirm", response_model=SuccessResponse[Identity])
async def confirm_email(confirmation: EmailConfirm, services: Services = Depends(get_services)):
    identity = await services.auth.confirm_email(confirmation.token)
    return SuccessResponse(data=identity, message="Email confirmed")


@router.put("/admin/users/{user_id}/role", response_model=SuccessResponse[Identity])
async def change_role(
    user_id: str,
    update: RoleUpdate,
    _: Identity = Depends(require_roles(Role.ADMIN)),
    services: Services = Depends(get_services),
):
    identity = await services.auth.set_role(user_id, update.role)
    return SuccessResponse(data=identity, message="Role updated")
