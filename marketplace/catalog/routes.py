from fastapi import APIRouter, Depends

from marketplace.auth.models import Identity, Role
from marketplace.catalog.models import CatalogItem
from marketplace.catalog.schemas import EventCreate, EventListResponse, EventResponse, EventUpdate
from marketplace.deps import Services, get_services, require_roles
from marketplace.shared.exceptions import ForbiddenException, NotFoundException
from marketplace.shared.utils import SuccessResponse

router = APIRouter(tags=["catalog"])


def to_response(item: CatalogItem) -> EventResponse:
    return EventResponse(**item.model_dump())


@router.get("/events", response_model=SuccessResponse[EventListResponse])
async def list_events(
    _: Identity = Depends(require_roles()),
    services: Services = Depends(get_services),
):
    items = await services.catalog.list_items()
    return SuccessResponse(data=EventListResponse(
        events=[to_response(i) for i in items],
        total=len(items),
    ))


@router.get("/events/mine", response_model=SuccessResponse[EventListResponse])
async def list_my_events(
    identity: Identity = Depends(require_roles(Role.VENDOR)),
    services: Services = Depends(get_services),
):
    items = [i for i in await services.catalog.list_items() if i.owner_id == identity.id]
    return SuccessResponse(data=EventListResponse(
        events=[to_response(i) for i in items],
        total=len(items),
    ))


@router.get("/events/{event_id}", response_model=SuccessResponse[EventResponse])
async def get_event(
    event_id: str,
    _: Identity = Depends(require_roles()),
    services: Services = Depends(get_services),
):
    item = await services.catalog.get_item(event_id)
    if not item:
        raise NotFoundException("Event not found")
    return SuccessResponse(data=to_response(item))


@router.post("/events", response_model=SuccessResponse[EventResponse])
async def create_event(
    event: EventCreate,
    identity: Identity = Depends(require_roles(Role.VENDOR)),
    services: Services = Depends(get_services),
):
    item = await services.catalog.create_item(CatalogItem(
        owner_id=identity.id,
        vendor_name=identity.display_name,
        **event.model_dump(),
    ))
    return SuccessResponse(data=to_response(item), message="Event created successfully")


async def _owned_or_raise(services: Services, identity: Identity, event_id: str) -> CatalogItem:
    item = await services.catalog.get_item(event_id)
    if not item:
        raise NotFoundException("Event not found")
    if item.owner_id != identity.id:
        raise ForbiddenException("Not authorized to modify this event")
    return item


@router.put("/events/{event_id}", response_model=SuccessResponse[EventResponse])
async def update_event(
    event_id: str,
    event_update: EventUpdate,
    identity: Identity = Depends(require_roles(Role.VENDOR)),
    services: Services = Depends(get_services),
):
    await _owned_or_raise(services, identity, event_id)
    update_data = {k: v for k, v in event_update.model_dump().items() if v is not None}
    item = await services.catalog.update_item(identity.id, event_id, update_data)
    if item is None:
        raise NotFoundException("Event not found")
    return SuccessResponse(data=to_response(item), message="Event updated successfully")


@router.delete("/events/{event_id}", response_model=SuccessResponse[dict])
async def delete_event(
    event_id: str,
    identity: Identity = Depends(require_roles(Role.VENDOR)),
    services: Services = Depends(get_services),
):
    await _owned_or_raise(services, identity, event_id)
    if not await services.catalog.delete_item(identity.id, event_id):
        raise NotFoundException("Event not found")
    return SuccessResponse(data={"id": event_id}, message="Event deleted successfully")
