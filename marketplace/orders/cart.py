from collections import OrderedDict
from decimal import Decimal
from typing import List

from pydantic import BaseModel

from marketplace.catalog.models import CatalogItem
from marketplace.orders.models import CartLine


class CartSummary(BaseModel):
    """Display-only price breakdown. Only ``subtotal`` is ever persisted."""
    subtotal: Decimal
    service_fee: Decimal
    tax: Decimal
    grand_total: Decimal
    item_count: int


class CartStore:
    """Per-session cart. Lines are keyed by item id, in insertion order."""

    def __init__(self):
        self._lines: "OrderedDict[str, CartLine]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._lines

    def add(self, item: CatalogItem, quantity: int = 1) -> CartLine:
        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        line = self._lines.get(item.id)
        if line is not None:
            # Keeps the snapshot from the first add
            line = line.model_copy(update={"quantity": line.quantity + quantity})
        else:
            line = CartLine(
                item_id=item.id,
                quantity=quantity,
                unit_price_snapshot=item.unit_price,
                name=item.name,
                vendor_label=item.vendor_name,
                image_url=item.image_url,
            )
        self._lines[item.id] = line
        return line

    def set_quantity(self, item_id: str, quantity: int) -> None:
        if quantity < 1 or item_id not in self._lines:
            return
        self._lines[item_id] = self._lines[item_id].model_copy(update={"quantity": quantity})

    def remove(self, item_id: str) -> None:
        self._lines.pop(item_id, None)

    def clear(self) -> None:
        self._lines.clear()

    def take(self, lines: List[CartLine]) -> None:
        """Remove what was checked out, keeping anything added since."""
        for line in lines:
            current = self._lines.get(line.item_id)
            if current is None:
                continue
            remaining = current.quantity - line.quantity
            if remaining >= 1:
                self._lines[line.item_id] = current.model_copy(update={"quantity": remaining})
            else:
                del self._lines[line.item_id]

    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    def total(self) -> Decimal:
        return sum((line.line_total for line in self._lines.values()), Decimal(0))

    def count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def summary(self, service_fee_rate: Decimal, tax_rate: Decimal) -> CartSummary:
        subtotal = self.total()
        service_fee = subtotal * service_fee_rate
        tax = subtotal * tax_rate
        return CartSummary(
            subtotal=subtotal,
            service_fee=service_fee,
            tax=tax,
            grand_total=subtotal + service_fee + tax,
            item_count=self.count(),
        )
