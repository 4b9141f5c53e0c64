"""Tests for the in-memory catalog store."""
from decimal import Decimal

import pytest

from marketplace.catalog.models import CatalogItem
from marketplace.catalog.schemas import EventCreate


def _event(owner_id, name, price="100"):
    return CatalogItem(owner_id=owner_id, vendor_name=owner_id.title(), name=name, unit_price=Decimal(price))


@pytest.mark.asyncio
async def test_owned_item_ids_and_id_set_reads(catalog):
    a = await catalog.create_item(_event("acme", "Concert"))
    b = await catalog.create_item(_event("acme", "Workshop"))
    c = await catalog.create_item(_event("zenith", "Talk"))

    assert await catalog.owned_item_ids("acme") == {a.id, b.id}
    found = await catalog.get_items([a.id, c.id, a.id, "missing"])
    assert {i.id for i in found} == {a.id, c.id}
    assert await catalog.count() == 3


@pytest.mark.asyncio
async def test_update_and_delete_require_the_owner(catalog):
    item = await catalog.create_item(_event("acme", "Concert"))

    assert await catalog.update_item("zenith", item.id, {"name": "Hijacked"}) is None
    assert await catalog.delete_item("zenith", item.id) is False

    updated = await catalog.update_item("acme", item.id, {"unit_price": Decimal("250")})
    assert updated.unit_price == Decimal("250")
    assert updated.updated_at is not None
    assert await catalog.delete_item("acme", item.id) is True
    assert await catalog.get_item(item.id) is None


def test_free_text_is_escaped():
    event = EventCreate(name="<b>Gala</b>", unit_price=10)
    assert event.name == "&lt;b&gt;Gala&lt;/b&gt;"


def test_negative_price_is_rejected():
    with pytest.raises(ValueError):
        EventCreate(name="Gala", unit_price=-1)
