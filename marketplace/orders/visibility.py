"""
Role-scoped order reads.

Admins see every order, buyers see their own, and vendors see only the
orders that contain at least one of their events. A vendor's view of an order
is redacted to that vendor's own lines, and ``total_price`` is recomputed over
those lines, so co-vendors in the same order are never disclosed.
"""
import logging
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from marketplace.auth.models import Identity, Role
from marketplace.auth.store import UserStore
from marketplace.catalog.store import CatalogStore
from marketplace.orders.models import OrderStatus, OrderView
from marketplace.orders.store import OrderStore
from marketplace.shared.exceptions import StoreError

logger = logging.getLogger(__name__)

ALL_STATUSES = "all"
STATUS_FILTERS = (ALL_STATUSES,) + tuple(s.value for s in OrderStatus)


class VisibilityResult(BaseModel):
    orders: List[OrderView] = []
    error: Optional[str] = None


class VendorStats(BaseModel):
    total_events: int
    total_bookings: int
    revenue: Decimal


class AdminStats(BaseModel):
    total_users: int
    total_vendors: int
    total_events: int
    total_revenue: Decimal
    recent_orders: List[OrderView]


class OrderVisibilityEngine:
    def __init__(self, catalog: CatalogStore, orders: OrderStore):
        self.catalog = catalog
        self.orders = orders

    async def visible_orders(self, identity: Identity, status: str = ALL_STATUSES) -> VisibilityResult:
        if status not in STATUS_FILTERS:
            raise ValueError(f"Unknown status filter: {status}")
        try:
            orders = await self.fetch_scoped(identity)
        except StoreError as e:
            logger.error("Order fetch failed", extra={
                "user_id": identity.id, "role": identity.role.value, "error": str(e.detail),
            })
            return VisibilityResult(orders=[], error=f"Could not load orders: {e.detail}")

        if status != ALL_STATUSES:
            orders = [o for o in orders if o.status == status]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return VisibilityResult(orders=orders)

    async def fetch_scoped(self, identity: Identity) -> List[OrderView]:
        """Orders this identity may see, unsorted. Store errors propagate."""
        if identity.role == Role.ADMIN:
            return await self.orders.fetch_orders()
        if identity.role == Role.VENDOR:
            return await self._fetch_vendor_orders(identity)
        return await self.orders.fetch_orders(buyer_id=identity.id)

    async def _fetch_vendor_orders(self, identity: Identity) -> List[OrderView]:
        # Each step narrows by the previous step's result; keep them sequential
        own_items = await self.catalog.owned_item_ids(identity.id)
        if not own_items:
            return []

        order_ids = await self.orders.order_ids_for_items(own_items)
        if not order_ids:
            return []

        orders = await self.orders.fetch_orders(order_ids=order_ids)

        scoped = []
        for order in orders:
            lines = [line for line in order.lines if line.item_id in own_items]
            total = sum((line.line_total for line in lines), Decimal(0))
            scoped.append(order.model_copy(update={"lines": lines, "total_price": total}))
        return scoped

    async def get_order(self, identity: Identity, order_id: str) -> Optional[OrderView]:
        for order in await self.fetch_scoped(identity):
            if order.id == order_id:
                return order
        return None

    async def vendor_stats(self, identity: Identity) -> VendorStats:
        own_items = await self.catalog.owned_item_ids(identity.id)
        orders = await self._fetch_vendor_orders(identity)
        return VendorStats(
            total_events=len(own_items),
            total_bookings=len(orders),
            revenue=sum((o.total_price for o in orders), Decimal(0)),
        )

    async def admin_stats(self, users: UserStore, recent: int = 5) -> AdminStats:
        orders = await self.orders.fetch_orders()
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return AdminStats(
            total_users=await users.count(),
            total_vendors=await users.count(Role.VENDOR),
            total_events=await self.catalog.count(),
            total_revenue=sum((o.total_price for o in orders), Decimal(0)),
            recent_orders=orders[:recent],
        )

    async def upcoming_items(self, identity: Identity, limit: int = 3) -> List[str]:
        """Event names from the buyer's confirmed and pending orders."""
        orders = await self.orders.fetch_orders(buyer_id=identity.id)
        orders.sort(key=lambda o: o.created_at, reverse=True)
        names = [
            line.item_name
            for order in orders if order.status in (OrderStatus.CONFIRMED, OrderStatus.PENDING)
            for line in order.lines if line.item_name
        ]
        return names[:limit]
