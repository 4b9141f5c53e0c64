"""Tests for the checkout saga."""
import asyncio
import logging
from decimal import Decimal

import pytest

from marketplace.auth.models import Role
from marketplace.orders.checkout import CheckoutOrchestrator, validate_contact
from marketplace.orders.models import CustomerDetails, OrderStatus
from marketplace.orders.store import MemoryOrderStore
from marketplace.shared.exceptions import (
    CheckoutInProgressError, EmptyCartError, StoreWriteError, UnauthorizedException,
)


class FailingLinesStore(MemoryOrderStore):
    async def insert_order_lines(self, lines):
        raise StoreWriteError("order_items insert rejected")


class FailingCleanupStore(FailingLinesStore):
    async def delete_order(self, order_id):
        raise StoreWriteError("delete rejected")


class FailingOrderStore(MemoryOrderStore):
    async def insert_order(self, order):
        raise StoreWriteError("orders insert rejected")

    async def insert_order_lines(self, lines):
        raise AssertionError("lines must not be written without an order")


class GatedOrderStore(MemoryOrderStore):
    def __init__(self, catalog):
        super().__init__(catalog)
        self.gate = asyncio.Event()
        self.order_inserts = 0

    async def insert_order(self, order):
        self.order_inserts += 1
        await self.gate.wait()
        return await super().insert_order(order)


async def _buyer_with_cart(make_session, add_event):
    vendor = await make_session(Role.VENDOR, "Acme Events")
    e1 = await add_event(vendor.get_current_identity(), "Concert", "5000")
    e2 = await add_event(vendor.get_current_identity(), "Workshop", "3000")
    buyer = await make_session(Role.USER, "Asha")
    buyer.cart.add(e1, 2)
    buyer.cart.add(e2, 1)
    return buyer, e1, e2


class TestValidation:
    def test_valid_contact_has_no_errors(self, billing):
        assert validate_contact(billing) == {}

    def test_required_fields(self):
        errors = validate_contact(CustomerDetails(name="  "))
        assert set(errors) == {"name", "email", "phone", "address", "city", "state", "pincode"}
        assert errors["phone"] == "This field is required"

    def test_bad_phone_and_pincode(self, billing):
        details = billing.model_copy(update={"phone": "12345", "pincode": "123"})
        errors = validate_contact(details)
        assert errors == {
            "phone": "Invalid 10-digit phone number",
            "pincode": "Invalid 6-digit pincode",
        }

    def test_phone_must_be_a_mobile_number(self, billing):
        assert "phone" in validate_contact(billing.model_copy(update={"phone": "1234567890"}))


class TestCheckout:
    @pytest.mark.asyncio
    async def test_success_persists_order_and_clears_cart(self, make_session, add_event, orders, billing):
        buyer, e1, e2 = await _buyer_with_cart(make_session, add_event)

        result = await CheckoutOrchestrator(orders).checkout(buyer, billing)

        assert result.ok
        assert result.field_errors == {}
        assert buyer.cart.count() == 0
        order = orders.orders[result.order_id]
        assert order.status == OrderStatus.CONFIRMED
        assert order.total_price == Decimal("13000")
        assert order.buyer_id == buyer.get_current_identity().id
        assert order.customer_details == billing
        lines = [l for l in orders.lines.values() if l.order_id == result.order_id]
        assert {(l.item_id, l.quantity, l.unit_price_snapshot) for l in lines} == {
            (e1.id, 2, Decimal("5000")),
            (e2.id, 1, Decimal("3000")),
        }

    @pytest.mark.asyncio
    async def test_lines_use_cart_snapshot_not_current_price(self, make_session, add_event, catalog, orders, billing):
        buyer, e1, _ = await _buyer_with_cart(make_session, add_event)
        await catalog.update_item(e1.owner_id, e1.id, {"unit_price": Decimal("9999")})

        result = await CheckoutOrchestrator(orders).checkout(buyer, billing)

        line = next(l for l in orders.lines.values() if l.item_id == e1.id)
        assert line.unit_price_snapshot == Decimal("5000")
        assert orders.orders[result.order_id].total_price == Decimal("13000")

    @pytest.mark.asyncio
    async def test_empty_cart_is_rejected_without_writes(self, make_session, orders, billing):
        buyer = await make_session(Role.USER)
        with pytest.raises(EmptyCartError):
            await CheckoutOrchestrator(orders).checkout(buyer, billing)
        assert orders.orders == {}

    @pytest.mark.asyncio
    async def test_invalid_contact_returns_field_errors_without_writes(self, make_session, add_event, orders, billing):
        buyer, _, _ = await _buyer_with_cart(make_session, add_event)
        details = billing.model_copy(update={"phone": "12345", "pincode": "123"})

        result = await CheckoutOrchestrator(orders).checkout(buyer, details)

        assert not result.ok
        assert set(result.field_errors) == {"phone", "pincode"}
        assert orders.orders == {}
        assert buyer.cart.count() == 3

    @pytest.mark.asyncio
    async def test_signed_out_session_cannot_check_out(self, make_session, add_event, orders, billing):
        buyer, _, _ = await _buyer_with_cart(make_session, add_event)
        await buyer.logout()
        with pytest.raises(UnauthorizedException):
            await CheckoutOrchestrator(orders).checkout(buyer, billing)


class TestCompensation:
    @pytest.mark.asyncio
    async def test_order_write_failure_stops_before_lines(self, make_session, add_event, catalog, billing):
        store = FailingOrderStore(catalog)
        buyer, _, _ = await _buyer_with_cart(make_session, add_event)

        with pytest.raises(StoreWriteError, match="orders insert rejected"):
            await CheckoutOrchestrator(store).checkout(buyer, billing)
        assert buyer.cart.count() == 3
        assert buyer.checkout_pending is False

    @pytest.mark.asyncio
    async def test_line_failure_deletes_the_order(self, make_session, add_event, catalog, billing):
        store = FailingLinesStore(catalog)
        buyer, _, _ = await _buyer_with_cart(make_session, add_event)

        with pytest.raises(StoreWriteError) as excinfo:
            await CheckoutOrchestrator(store).checkout(buyer, billing)

        assert excinfo.value.detail == "order_items insert rejected"
        assert excinfo.value.compensation_error is None
        assert store.orders == {}
        # Cart survives so the buyer can retry
        assert buyer.cart.count() == 3

    @pytest.mark.asyncio
    async def test_failed_cleanup_does_not_mask_original_error(self, make_session, add_event, catalog, billing, caplog):
        store = FailingCleanupStore(catalog)
        buyer, _, _ = await _buyer_with_cart(make_session, add_event)

        with caplog.at_level(logging.ERROR, logger="marketplace.orders.checkout"):
            with pytest.raises(StoreWriteError) as excinfo:
                await CheckoutOrchestrator(store).checkout(buyer, billing)

        assert excinfo.value.detail == "order_items insert rejected"
        assert excinfo.value.compensation_error is not None
        assert "delete rejected" in excinfo.value.compensation_error.detail
        assert any(r.message == "Compensating delete failed" for r in caplog.records)


class TestDoubleSubmit:
    @pytest.mark.asyncio
    async def test_second_checkout_is_refused_while_first_is_in_flight(self, make_session, add_event, catalog, billing):
        store = GatedOrderStore(catalog)
        checkout = CheckoutOrchestrator(store)
        buyer, _, _ = await _buyer_with_cart(make_session, add_event)

        first = asyncio.create_task(checkout.checkout(buyer, billing))
        await asyncio.sleep(0)
        assert buyer.checkout_pending

        with pytest.raises(CheckoutInProgressError):
            await checkout.checkout(buyer, billing)

        store.gate.set()
        result = await first
        assert result.ok
        assert store.order_inserts == 1
        assert len(store.orders) == 1
        assert buyer.checkout_pending is False

    @pytest.mark.asyncio
    async def test_checkout_is_allowed_again_after_completion(self, make_session, add_event, orders, billing):
        checkout = CheckoutOrchestrator(orders)
        buyer, e1, _ = await _buyer_with_cart(make_session, add_event)
        await checkout.checkout(buyer, billing)

        buyer.cart.add(e1)
        result = await checkout.checkout(buyer, billing)
        assert result.ok
        assert len(orders.orders) == 2

    @pytest.mark.asyncio
    async def test_items_added_during_checkout_stay_in_cart(self, make_session, add_event, catalog, billing):
        store = GatedOrderStore(catalog)
        checkout = CheckoutOrchestrator(store)
        buyer, e1, e2 = await _buyer_with_cart(make_session, add_event)
        vendor = await make_session(Role.VENDOR, "Late Events")
        late = await add_event(vendor.get_current_identity(), "Late Show", "700")

        first = asyncio.create_task(checkout.checkout(buyer, billing))
        await asyncio.sleep(0)
        buyer.cart.add(late)
        buyer.cart.add(e1)
        store.gate.set()
        result = await first

        ordered = {(l.item_id, l.quantity) for l in store.lines.values() if l.order_id == result.order_id}
        assert ordered == {(e1.id, 2), (e2.id, 1)}
        assert store.orders[result.order_id].total_price == Decimal("13000")
        assert {(l.item_id, l.quantity) for l in buyer.cart.lines()} == {(late.id, 1), (e1.id, 1)}
