from datetime import datetime
from typing import Dict, Optional, Protocol

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from marketplace.auth.models import Role, UserDB
from marketplace.shared.exceptions import AuthError, StoreError, StoreWriteError
from marketplace.shared.utils import new_id, utcnow


class UserStore(Protocol):
    async def find_by_email(self, email: str) -> Optional[UserDB]: ...
    async def get(self, user_id: str) -> Optional[UserDB]: ...
    async def insert(self, user: UserDB) -> UserDB: ...
    async def update(self, user_id: str, fields: dict) -> Optional[UserDB]: ...
    async def count(self, role: Optional[Role] = None) -> int: ...
    async def revoke(self, jti: str, exp: datetime) -> None: ...
    async def is_revoked(self, jti: str) -> bool: ...


class MemoryUserStore:
    def __init__(self):
        self.users: Dict[str, UserDB] = {}
        self.revoked: Dict[str, datetime] = {}

    async def find_by_email(self, email: str) -> Optional[UserDB]:
        email = email.lower()
        for user in self.users.values():
            if user.email.lower() == email:
                return user
        return None

    async def get(self, user_id: str) -> Optional[UserDB]:
        return self.users.get(user_id)

    async def insert(self, user: UserDB) -> UserDB:
        stored = user.model_copy(update={"id": new_id()})
        self.users[stored.id] = stored
        return stored

    async def update(self, user_id: str, fields: dict) -> Optional[UserDB]:
        user = self.users.get(user_id)
        if user is None:
            return None
        user = user.model_copy(update=fields)
        self.users[user_id] = user
        return user

    async def count(self, role: Optional[Role] = None) -> int:
        if role is None:
            return len(self.users)
        return len([u for u in self.users.values() if u.role == role])

    async def revoke(self, jti: str, exp: datetime) -> None:
        self.revoked[jti] = exp

    async def is_revoked(self, jti: str) -> bool:
        exp = self.revoked.get(jti)
        return exp is not None and exp > utcnow()


class MongoUserStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def create_indexes(self):
        await self.db.users.create_index("email", unique=True)
        # TTL index drops revoked tokens once they would have expired anyway
        await self.db.revoked_tokens.create_index("exp", expireAfterSeconds=0)

    def _to_model(self, doc: Optional[dict]) -> Optional[UserDB]:
        if not doc:
            return None
        return UserDB(**doc)

    async def find_by_email(self, email: str) -> Optional[UserDB]:
        try:
            doc = await self.db.users.find_one({"email": email.lower()})
        except PyMongoError as e:
            raise StoreError(f"Could not load account: {e}")
        return self._to_model(doc)

    async def get(self, user_id: str) -> Optional[UserDB]:
        try:
            doc = await self.db.users.find_one({"_id": user_id})
        except PyMongoError as e:
            raise StoreError(f"Could not load account: {e}")
        return self._to_model(doc)

    async def insert(self, user: UserDB) -> UserDB:
        doc = user.model_dump(by_alias=True, exclude={"id"})
        doc["_id"] = new_id()
        doc["email"] = doc["email"].lower()
        try:
            await self.db.users.insert_one(doc)
        except DuplicateKeyError:
            # Lost a race with another sign-up for the same email
            raise AuthError("Email already registered", status_code=400)
        except PyMongoError as e:
            raise StoreWriteError(f"Could not create account: {e}")
        return UserDB(**doc)

    async def update(self, user_id: str, fields: dict) -> Optional[UserDB]:
        try:
            await self.db.users.update_one({"_id": user_id}, {"$set": fields})
        except PyMongoError as e:
            raise StoreWriteError(f"Could not update account: {e}")
        return await self.get(user_id)

    async def count(self, role: Optional[Role] = None) -> int:
        query = {} if role is None else {"role": role.value}
        try:
            return await self.db.users.count_documents(query)
        except PyMongoError as e:
            raise StoreError(f"Could not count accounts: {e}")

    async def revoke(self, jti: str, exp: datetime) -> None:
        try:
            await self.db.revoked_tokens.insert_one({"jti": jti, "exp": exp})
        except PyMongoError as e:
            raise StoreWriteError(f"Could not revoke token: {e}")

    async def is_revoked(self, jti: str) -> bool:
        try:
            return await self.db.revoked_tokens.find_one({"jti": jti}) is not None
        except PyMongoError as e:
            raise StoreError(f"Could not check token: {e}")
