"""Tests for the Mongo account store's error mapping, against a stand-in collection."""
import pytest
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from marketplace.auth.models import Role, UserDB
from marketplace.auth.store import MongoUserStore
from marketplace.shared.exceptions import AuthError, StoreWriteError


class RefusingCollection:
    def __init__(self, error):
        self.error = error

    async def insert_one(self, doc):
        raise self.error


class FakeDB:
    def __init__(self, error):
        self.users = RefusingCollection(error)


def _user():
    return UserDB(email="race@test.com", password_hash="x", role=Role.USER, name="Racer")


@pytest.mark.asyncio
async def test_duplicate_email_on_insert_is_an_auth_error():
    store = MongoUserStore(FakeDB(DuplicateKeyError("E11000 duplicate key error")))
    with pytest.raises(AuthError) as excinfo:
        await store.insert(_user())
    assert excinfo.value.status_code == 400
    assert excinfo.value.detail == "Email already registered"


@pytest.mark.asyncio
async def test_other_insert_failures_stay_store_errors():
    store = MongoUserStore(FakeDB(ServerSelectionTimeoutError("no primary")))
    with pytest.raises(StoreWriteError):
        await store.insert(_user())
