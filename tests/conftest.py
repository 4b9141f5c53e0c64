import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from marketplace.auth.models import Identity, Role
from marketplace.auth.session import AuthBackend, Session
from marketplace.auth.store import MemoryUserStore
from marketplace.catalog.models import CatalogItem
from marketplace.catalog.store import MemoryCatalogStore
from marketplace.orders.models import CustomerDetails, OrderDB, OrderLineDB, OrderStatus
from marketplace.orders.store import MemoryOrderStore
from marketplace.shared.utils import Settings

PASSWORD = "Password123"


@pytest.fixture
def config():
    return Settings(STORE_BACKEND="memory", SECRET_KEY="test-secret")


@pytest.fixture
def users():
    return MemoryUserStore()


@pytest.fixture
def catalog():
    return MemoryCatalogStore()


@pytest.fixture
def orders(catalog):
    return MemoryOrderStore(catalog)


@pytest.fixture
def auth(users, config):
    return AuthBackend(users, config)


@pytest.fixture
def billing():
    return CustomerDetails(
        name="Asha Rao",
        email="asha@test.com",
        phone="9876543210",
        address="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        pincode="560001",
    )


@pytest.fixture
def make_session(auth):
    """Sign up a fresh account and return its live session."""
    async def _make(role: Role = Role.USER, name: str = "Test User") -> Session:
        session = Session(auth)
        email = f"{role.value}-{uuid.uuid4().hex[:8]}@test.com"
        # Admin is never self-registered; promote a fresh account instead
        await session.sign_up(name, email, PASSWORD, Role.USER if role == Role.ADMIN else role)
        if role == Role.ADMIN:
            await auth.set_role(session.get_current_identity().id, Role.ADMIN)
        return session
    return _make


@pytest.fixture
def add_event(catalog):
    async def _add(owner: Identity, name: str = "Jazz Night", price: str = "1000") -> CatalogItem:
        return await catalog.create_item(CatalogItem(
            owner_id=owner.id,
            vendor_name=owner.display_name,
            name=name,
            unit_price=Decimal(price),
            capacity=100,
        ))
    return _add


@pytest.fixture
def place_order(orders):
    """Write an order and its lines straight to the store."""
    async def _place(buyer_id: str, lines: List[Tuple[CatalogItem, int]],
                     status: OrderStatus = OrderStatus.CONFIRMED,
                     created_at: Optional[datetime] = None) -> str:
        fields = {}
        if created_at is not None:
            fields["created_at"] = created_at
        order = await orders.insert_order(OrderDB(
            buyer_id=buyer_id,
            status=status,
            total_price=sum((item.unit_price * qty for item, qty in lines), Decimal(0)),
            customer_details=CustomerDetails(name="Buyer"),
            **fields,
        ))
        await orders.insert_order_lines([
            OrderLineDB(order_id=order.id, item_id=item.id, quantity=qty, unit_price_snapshot=item.unit_price)
            for item, qty in lines
        ])
        return order.id
    return _place


@pytest.fixture
def client(config):
    from marketplace.main import create_app

    app = create_app(config, rate_limit=False)
    with TestClient(app) as test_client:
        yield test_client
