from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Protocol, Set

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from marketplace.catalog.store import MemoryCatalogStore
from marketplace.orders.models import OrderDB, OrderLineDB, OrderLineView, OrderView
from marketplace.shared.exceptions import StoreError, StoreWriteError
from marketplace.shared.utils import new_id, to_decimal


class OrderStore(Protocol):
    async def insert_order(self, order: OrderDB) -> OrderDB: ...
    async def insert_order_lines(self, lines: List[OrderLineDB]) -> List[OrderLineDB]: ...
    async def delete_order(self, order_id: str) -> None: ...
    async def order_ids_for_items(self, item_ids: Iterable[str]) -> Set[str]: ...
    async def fetch_orders(self, buyer_id: Optional[str] = None,
                           order_ids: Optional[Iterable[str]] = None) -> List[OrderView]: ...


def _join(order: OrderDB, lines: List[OrderLineDB], items: Dict[str, dict]) -> OrderView:
    views = []
    for line in lines:
        item = items.get(line.item_id, {})
        views.append(OrderLineView(
            id=line.id,
            order_id=line.order_id,
            item_id=line.item_id,
            quantity=line.quantity,
            unit_price_snapshot=line.unit_price_snapshot,
            item_name=item.get("name"),
            item_owner_id=item.get("owner_id"),
        ))
    return OrderView(
        id=order.id,
        buyer_id=order.buyer_id,
        status=order.status,
        total_price=order.total_price,
        customer_details=order.customer_details,
        created_at=order.created_at,
        lines=views,
    )


class MemoryOrderStore:
    def __init__(self, catalog: MemoryCatalogStore):
        self.catalog = catalog
        self.orders: Dict[str, OrderDB] = {}
        self.lines: Dict[str, OrderLineDB] = {}

    async def insert_order(self, order: OrderDB) -> OrderDB:
        stored = order.model_copy(update={"id": new_id()})
        self.orders[stored.id] = stored
        return stored

    async def insert_order_lines(self, lines: List[OrderLineDB]) -> List[OrderLineDB]:
        for line in lines:
            if line.order_id not in self.orders:
                raise StoreWriteError(f"Order {line.order_id} does not exist")
        stored = [line.model_copy(update={"id": new_id()}) for line in lines]
        for line in stored:
            self.lines[line.id] = line
        return stored

    async def delete_order(self, order_id: str) -> None:
        self.orders.pop(order_id, None)
        for line_id in [k for k, v in self.lines.items() if v.order_id == order_id]:
            del self.lines[line_id]

    async def order_ids_for_items(self, item_ids: Iterable[str]) -> Set[str]:
        wanted = set(item_ids)
        return {line.order_id for line in self.lines.values() if line.item_id in wanted}

    async def fetch_orders(self, buyer_id: Optional[str] = None,
                           order_ids: Optional[Iterable[str]] = None) -> List[OrderView]:
        orders = list(self.orders.values())
        if buyer_id is not None:
            orders = [o for o in orders if o.buyer_id == buyer_id]
        if order_ids is not None:
            wanted = set(order_ids)
            orders = [o for o in orders if o.id in wanted]

        by_order = defaultdict(list)
        for line in self.lines.values():
            by_order[line.order_id].append(line)
        items = {
            item.id: {"name": item.name, "owner_id": item.owner_id}
            for item in self.catalog.items.values()
        }
        return [_join(order, by_order[order.id], items) for order in orders]


class MongoOrderStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def create_indexes(self):
        await self.db.orders.create_index("buyer_id")
        await self.db.order_lines.create_index("order_id")
        await self.db.order_lines.create_index("item_id")

    async def insert_order(self, order: OrderDB) -> OrderDB:
        doc = order.model_dump(by_alias=True, exclude={"id"}, mode="json")
        doc["_id"] = new_id()
        doc["total_price"] = float(order.total_price)
        doc["created_at"] = order.created_at
        try:
            await self.db.orders.insert_one(doc)
        except PyMongoError as e:
            raise StoreWriteError(f"Could not create order: {e}")
        return order.model_copy(update={"id": doc["_id"]})

    async def insert_order_lines(self, lines: List[OrderLineDB]) -> List[OrderLineDB]:
        stored = [line.model_copy(update={"id": new_id()}) for line in lines]
        docs = []
        for line in stored:
            doc = line.model_dump(by_alias=True)
            doc["unit_price_snapshot"] = float(doc["unit_price_snapshot"])
            docs.append(doc)
        try:
            await self.db.order_lines.insert_many(docs)
        except PyMongoError as e:
            raise StoreWriteError(f"Could not save order items: {e}")
        return stored

    async def delete_order(self, order_id: str) -> None:
        try:
            # Lines first, so a partial batch never outlives its order
            await self.db.order_lines.delete_many({"order_id": order_id})
            await self.db.orders.delete_one({"_id": order_id})
        except PyMongoError as e:
            raise StoreWriteError(f"Could not delete order {order_id}: {e}")

    async def order_ids_for_items(self, item_ids: Iterable[str]) -> Set[str]:
        try:
            return set(await self.db.order_lines.distinct(
                "order_id", {"item_id": {"$in": list(item_ids)}}
            ))
        except PyMongoError as e:
            raise StoreError(f"Could not load order items: {e}")

    async def fetch_orders(self, buyer_id: Optional[str] = None,
                           order_ids: Optional[Iterable[str]] = None) -> List[OrderView]:
        query = {}
        if buyer_id is not None:
            query["buyer_id"] = buyer_id
        if order_ids is not None:
            query["_id"] = {"$in": list(order_ids)}

        try:
            orders = []
            async for doc in self.db.orders.find(query):
                doc["total_price"] = to_decimal(doc["total_price"])
                orders.append(OrderDB(**doc))

            by_order = defaultdict(list)
            cursor = self.db.order_lines.find({"order_id": {"$in": [o.id for o in orders]}})
            async for doc in cursor:
                doc["unit_price_snapshot"] = to_decimal(doc["unit_price_snapshot"])
                line = OrderLineDB(**doc)
                by_order[line.order_id].append(line)

            item_ids = {line.item_id for lines in by_order.values() for line in lines}
            items = {}
            cursor = self.db.events.find({"_id": {"$in": list(item_ids)}}, {"name": 1, "owner_id": 1})
            async for doc in cursor:
                items[doc["_id"]] = doc
        except PyMongoError as e:
            raise StoreError(f"Could not load orders: {e}")

        return [_join(order, by_order[order.id], items) for order in orders]
