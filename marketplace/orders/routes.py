import asyncio
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from marketplace.auth.models import Identity, Role
from marketplace.auth.session import Session
from marketplace.deps import Services, get_services, get_session, require_roles
from marketplace.orders.schemas import (
    CartItemAdd, CartItemUpdate, CartResponse, CartSummaryResponse,
    CheckoutRequest, CheckoutResponse, OrderListResponse,
)
from marketplace.orders.models import OrderView
from marketplace.orders.visibility import AdminStats, VendorStats
from marketplace.shared.exceptions import NotFoundException, StoreWriteError, VisibilityFetchError
from marketplace.shared.utils import ErrorResponse, SuccessResponse

router = APIRouter(tags=["orders"])

STATUS_PATTERN = "^(all|pending|confirmed|completed|cancelled)$"


def cart_response(session: Session) -> CartResponse:
    cart = session.cart
    return CartResponse(lines=cart.lines(), total=cart.total(), count=cart.count())


# Cart
@router.get("/cart", response_model=SuccessResponse[CartResponse])
async def get_cart(
    _: Identity = Depends(require_roles(Role.USER)),
    session: Session = Depends(get_session),
):
    return SuccessResponse(data=cart_response(session))


@router.get("/cart/summary", response_model=SuccessResponse[CartSummaryResponse])
async def get_cart_summary(
    _: Identity = Depends(require_roles(Role.USER)),
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    summary = session.cart.summary(services.config.SERVICE_FEE_RATE, services.config.TAX_RATE)
    return SuccessResponse(data=CartSummaryResponse(
        **cart_response(session).model_dump(), summary=summary
    ))


@router.post("/cart/items", response_model=SuccessResponse[CartResponse])
async def add_to_cart(
    item: CartItemAdd,
    _: Identity = Depends(require_roles(Role.USER)),
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    event = await services.catalog.get_item(item.item_id)
    if not event:
        raise NotFoundException(f"Event {item.item_id} not found")
    session.cart.add(event, item.quantity)
    return SuccessResponse(data=cart_response(session), message=f"{event.name} added to cart")


@router.put("/cart/items/{item_id}", response_model=SuccessResponse[CartResponse])
async def update_cart_item(
    item_id: str,
    update: CartItemUpdate,
    _: Identity = Depends(require_roles(Role.USER)),
    session: Session = Depends(get_session),
):
    if item_id not in session.cart:
        raise NotFoundException("Item not found in cart")
    # Below 1 is ignored; removal goes through DELETE
    session.cart.set_quantity(item_id, update.quantity)
    return SuccessResponse(data=cart_response(session))


@router.delete("/cart/items/{item_id}", response_model=SuccessResponse[CartResponse])
async def remove_cart_item(
    item_id: str,
    _: Identity = Depends(require_roles(Role.USER)),
    session: Session = Depends(get_session),
):
    session.cart.remove(item_id)
    return SuccessResponse(data=cart_response(session))


@router.delete("/cart", response_model=SuccessResponse[dict])
async def clear_cart(
    _: Identity = Depends(require_roles(Role.USER)),
    session: Session = Depends(get_session),
):
    session.cart.clear()
    return SuccessResponse(message="Cart cleared")


# Checkout
@router.post("/checkout", response_model=SuccessResponse[CheckoutResponse])
async def checkout(
    form: CheckoutRequest,
    _: Identity = Depends(require_roles(Role.USER)),
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    try:
        # Shielded: a client that goes away must not leave a half-written order
        result = await asyncio.shield(services.checkout.checkout(session, form.to_details()))
    except StoreWriteError as e:
        details = None
        if e.compensation_error is not None:
            details = {"compensation_error": str(e.compensation_error.detail)}
        return JSONResponse(
            status_code=e.status_code,
            content=ErrorResponse(error=str(e.detail), details=details).model_dump(),
        )

    if not result.ok:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=ErrorResponse(error="Invalid billing information", details=result.field_errors).model_dump(),
        )
    return SuccessResponse(
        data=CheckoutResponse(order_id=result.order_id),
        message="Order placed successfully",
    )


# Orders
@router.get("/orders", response_model=SuccessResponse[OrderListResponse])
async def list_orders(
    status_filter: str = Query("all", alias="status", pattern=STATUS_PATTERN),
    _: Identity = Depends(require_roles(Role.USER, Role.VENDOR, Role.ADMIN)),
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    result = await session.load_orders(services.visibility, status_filter)
    if result is None:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=ErrorResponse(error="Session changed while loading orders", details={"orders": []}).model_dump(),
        )
    if result.error:
        raise VisibilityFetchError(result.error)
    return SuccessResponse(data=OrderListResponse(orders=result.orders, status=status_filter))


@router.get("/orders/{order_id}", response_model=SuccessResponse[OrderView])
async def get_order(
    order_id: str,
    identity: Identity = Depends(require_roles(Role.USER, Role.VENDOR, Role.ADMIN)),
    services: Services = Depends(get_services),
):
    order = await services.visibility.get_order(identity, order_id)
    if not order:
        raise NotFoundException("Order not found")
    return SuccessResponse(data=order)


# Dashboards
@router.get("/dashboard/vendor", response_model=SuccessResponse[VendorStats])
async def vendor_dashboard(
    identity: Identity = Depends(require_roles(Role.VENDOR)),
    services: Services = Depends(get_services),
):
    return SuccessResponse(data=await services.visibility.vendor_stats(identity))


@router.get("/dashboard/admin", response_model=SuccessResponse[AdminStats])
async def admin_dashboard(
    _: Identity = Depends(require_roles(Role.ADMIN)),
    services: Services = Depends(get_services),
):
    return SuccessResponse(data=await services.visibility.admin_stats(services.users))


@router.get("/dashboard/user", response_model=SuccessResponse[dict])
async def user_dashboard(
    identity: Identity = Depends(require_roles(Role.USER)),
    services: Services = Depends(get_services),
):
    upcoming = await services.visibility.upcoming_items(identity)
    return SuccessResponse(data={"upcoming_events": upcoming})
