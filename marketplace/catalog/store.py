from typing import Dict, Iterable, List, Optional, Protocol, Set

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from marketplace.catalog.models import CatalogItem
from marketplace.shared.exceptions import StoreError, StoreWriteError
from marketplace.shared.utils import new_id, to_decimal, utcnow


class CatalogStore(Protocol):
    async def list_items(self) -> List[CatalogItem]: ...
    async def get_item(self, item_id: str) -> Optional[CatalogItem]: ...
    async def get_items(self, item_ids: Iterable[str]) -> List[CatalogItem]: ...
    async def owned_item_ids(self, owner_id: str) -> Set[str]: ...
    async def create_item(self, item: CatalogItem) -> CatalogItem: ...
    async def update_item(self, owner_id: str, item_id: str, fields: dict) -> Optional[CatalogItem]: ...
    async def delete_item(self, owner_id: str, item_id: str) -> bool: ...
    async def count(self) -> int: ...


class MemoryCatalogStore:
    def __init__(self):
        self.items: Dict[str, CatalogItem] = {}

    async def list_items(self) -> List[CatalogItem]:
        return sorted(self.items.values(), key=lambda i: i.created_at, reverse=True)

    async def get_item(self, item_id: str) -> Optional[CatalogItem]:
        return self.items.get(item_id)

    async def get_items(self, item_ids: Iterable[str]) -> List[CatalogItem]:
        return [self.items[i] for i in set(item_ids) if i in self.items]

    async def owned_item_ids(self, owner_id: str) -> Set[str]:
        return {i.id for i in self.items.values() if i.owner_id == owner_id}

    async def create_item(self, item: CatalogItem) -> CatalogItem:
        stored = item.model_copy(update={"id": new_id()})
        self.items[stored.id] = stored
        return stored

    async def update_item(self, owner_id: str, item_id: str, fields: dict) -> Optional[CatalogItem]:
        item = self.items.get(item_id)
        if item is None or item.owner_id != owner_id:
            return None
        item = item.model_copy(update={**fields, "updated_at": utcnow()})
        self.items[item_id] = item
        return item

    async def delete_item(self, owner_id: str, item_id: str) -> bool:
        item = self.items.get(item_id)
        if item is None or item.owner_id != owner_id:
            return False
        del self.items[item_id]
        return True

    async def count(self) -> int:
        return len(self.items)


class MongoCatalogStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def create_indexes(self):
        await self.db.events.create_index("owner_id")

    def _to_model(self, doc: dict) -> CatalogItem:
        doc["unit_price"] = to_decimal(doc["unit_price"])
        return CatalogItem(**doc)

    async def list_items(self) -> List[CatalogItem]:
        try:
            cursor = self.db.events.find({}).sort("created_at", -1)
            return [self._to_model(doc) async for doc in cursor]
        except PyMongoError as e:
            raise StoreError(f"Could not load events: {e}")

    async def get_item(self, item_id: str) -> Optional[CatalogItem]:
        try:
            doc = await self.db.events.find_one({"_id": item_id})
        except PyMongoError as e:
            raise StoreError(f"Could not load event: {e}")
        return self._to_model(doc) if doc else None

    async def get_items(self, item_ids: Iterable[str]) -> List[CatalogItem]:
        try:
            cursor = self.db.events.find({"_id": {"$in": list(set(item_ids))}})
            return [self._to_model(doc) async for doc in cursor]
        except PyMongoError as e:
            raise StoreError(f"Could not load events: {e}")

    async def owned_item_ids(self, owner_id: str) -> Set[str]:
        try:
            cursor = self.db.events.find({"owner_id": owner_id}, {"_id": 1})
            return {doc["_id"] async for doc in cursor}
        except PyMongoError as e:
            raise StoreError(f"Could not load vendor events: {e}")

    async def create_item(self, item: CatalogItem) -> CatalogItem:
        doc = item.model_dump(by_alias=True, exclude={"id"})
        doc["_id"] = new_id()
        doc["unit_price"] = float(doc["unit_price"])
        try:
            await self.db.events.insert_one(doc)
        except PyMongoError as e:
            raise StoreWriteError(f"Could not create event: {e}")
        return self._to_model(doc)

    async def update_item(self, owner_id: str, item_id: str, fields: dict) -> Optional[CatalogItem]:
        update = dict(fields)
        if "unit_price" in update:
            update["unit_price"] = float(update["unit_price"])
        update["updated_at"] = utcnow()
        try:
            result = await self.db.events.update_one(
                {"_id": item_id, "owner_id": owner_id}, {"$set": update}
            )
        except PyMongoError as e:
            raise StoreWriteError(f"Could not update event: {e}")
        if result.matched_count == 0:
            return None
        return await self.get_item(item_id)

    async def delete_item(self, owner_id: str, item_id: str) -> bool:
        try:
            result = await self.db.events.delete_one({"_id": item_id, "owner_id": owner_id})
        except PyMongoError as e:
            raise StoreWriteError(f"Could not delete event: {e}")
        return result.deleted_count == 1

    async def count(self) -> int:
        try:
            return await self.db.events.count_documents({})
        except PyMongoError as e:
            raise StoreError(f"Could not count events: {e}")
