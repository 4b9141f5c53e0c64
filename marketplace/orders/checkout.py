"""
Cart to order conversion.

The store has no multi-statement transactions, so checkout is a two-step
saga: insert the order, then its lines. If the lines cannot be written the
order is deleted again, and the original write error is what the caller sees.
"""
import logging
import re
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel

from marketplace.auth.session import Session
from marketplace.orders.models import CartLine, CustomerDetails, OrderDB, OrderLineDB, OrderStatus
from marketplace.orders.store import OrderStore
from marketplace.shared.exceptions import (
    CheckoutInProgressError, CompensationError, EmptyCartError,
    StoreError, StoreWriteError, UnauthorizedException,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "email", "phone", "address", "city", "state", "pincode")
PHONE_PATTERN = re.compile(r"^[6-9]\d{9}$")
PINCODE_PATTERN = re.compile(r"^\d{6}$")


def validate_contact(details: CustomerDetails) -> Dict[str, str]:
    """Field name -> message for every problem in the billing contact."""
    errors = {}
    for field in REQUIRED_FIELDS:
        if not getattr(details, field).strip():
            errors[field] = "This field is required"
    if "phone" not in errors and not PHONE_PATTERN.match(details.phone.strip()):
        errors["phone"] = "Invalid 10-digit phone number"
    if "pincode" not in errors and not PINCODE_PATTERN.match(details.pincode.strip()):
        errors["pincode"] = "Invalid 6-digit pincode"
    return errors


class CheckoutResult(BaseModel):
    order_id: Optional[str] = None
    field_errors: Dict[str, str] = {}

    @property
    def ok(self) -> bool:
        return self.order_id is not None


class CheckoutOrchestrator:
    def __init__(self, orders: OrderStore):
        self.orders = orders

    async def checkout(self, session: Session, details: CustomerDetails) -> CheckoutResult:
        identity = session.get_current_identity()
        if identity is None:
            raise UnauthorizedException("Sign in to check out")
        if session.checkout_pending:
            raise CheckoutInProgressError()

        lines = session.cart.lines()
        if not lines:
            raise EmptyCartError()

        errors = validate_contact(details)
        if errors:
            return CheckoutResult(field_errors=errors)

        # Set before the first await so a second submit sees it
        session.checkout_pending = True
        try:
            order_id = await self._place_order(identity.id, lines, details)
        finally:
            session.checkout_pending = False

        # Lines added while the order was being written stay in the cart
        session.cart.take(lines)
        return CheckoutResult(order_id=order_id)

    async def _place_order(self, buyer_id: str, lines: List[CartLine], details: CustomerDetails) -> str:
        total = sum((line.line_total for line in lines), Decimal(0))

        order = await self.orders.insert_order(OrderDB(
            buyer_id=buyer_id,
            status=OrderStatus.CONFIRMED,
            total_price=total,
            customer_details=details,
        ))

        try:
            await self.orders.insert_order_lines([
                OrderLineDB(
                    order_id=order.id,
                    item_id=line.item_id,
                    quantity=line.quantity,
                    unit_price_snapshot=line.unit_price_snapshot,
                )
                for line in lines
            ])
        except StoreError as e:
            write_error = e if isinstance(e, StoreWriteError) else StoreWriteError(str(e.detail))
            await self._compensate(order.id, write_error)
            raise write_error

        logger.info("Order placed", extra={
            "order_id": order.id, "user_id": buyer_id,
            "line_count": len(lines), "total_price": str(total),
        })
        return order.id

    async def _compensate(self, order_id: str, write_error: StoreWriteError):
        try:
            await self.orders.delete_order(order_id)
        except StoreError as e:
            write_error.compensation_error = CompensationError(
                f"Could not remove order {order_id} after a failed item insert: {e.detail}"
            )
            logger.error("Compensating delete failed", extra={
                "order_id": order_id, "error": str(e.detail),
            })
        else:
            logger.warning("Order removed after failed item insert", extra={
                "order_id": order_id, "error": str(write_error.detail),
            })
