from fastapi import APIRouter, Depends, HTTPException, Query, status

from marketplace.auth.session import Session
from marketplace.deps import Services, get_services, get_session
from marketplace.gateway.guard import GuardResult, navigate
from marketplace.shared.utils import HealthResponse, SuccessResponse, utcnow

router = APIRouter(tags=["gateway"])


@router.get("/navigate", response_model=SuccessResponse[GuardResult])
async def check_navigation(
    path: str = Query(..., min_length=1),
    session: Session = Depends(get_session),
):
    result = navigate(session.get_current_identity(), path, pending=session.pending)
    return SuccessResponse(data=result)


@router.get("/health", response_model=HealthResponse)
async def health_check(services: Services = Depends(get_services)):
    db_status = "in-memory"
    if services.mongodb_client is not None:
        try:
            await services.mongodb_client.admin.command('ping')
            db_status = "connected"
        except Exception:
            db_status = "disconnected"

    if db_status == "disconnected":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service Unhealthy"
        )

    return HealthResponse(
        service="marketplace",
        status="healthy",
        timestamp=utcnow(),
        version="1.0.0",
        database=db_status,
        dependencies={"sessions": str(len(services.sessions))},
    )
