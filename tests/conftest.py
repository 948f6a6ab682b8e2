from datetime import datetime
from uuid import uuid4

import mongomock
import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure

import cascade
from clients import create_client
from database import ensure_indexes
from projects import create_project
from schemas import Client, Project, User
from users import create_user

NOW = datetime(2024, 6, 15, 12, 0, 0)


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    database = client["freelance_test"]
    ensure_indexes(database)
    yield database
    client.close()


@pytest.fixture
def hooks():
    cascade.delete_hooks.clear()
    cascade.register_cascade_hooks()
    yield cascade.delete_hooks
    cascade.delete_hooks.clear()


@pytest.fixture
def user(db):
    return make_user(db)


@pytest.fixture
def client_doc(db, user):
    return make_client(db, user["_id"])


@pytest.fixture
def project(db, user, client_doc):
    return make_project(db, user["_id"], client_doc["_id"])


def make_user(db, name="Asha Rao"):
    return create_user(db, User(name=name, email=f"{uuid4().hex}@example.com", password="hashed"))


def make_client(db, user_id, name="Acme Corp", status="Active"):
    return create_client(db, user_id, Client(name=name, status=status))


def make_project(db, user_id, client_id, name="Website", status="active", **fields):
    return create_project(db, user_id, client_id, Project(name=name, status=status, **fields))


def milestone_doc(**overrides):
    doc = {
        "_id": ObjectId(),
        "name": "Phase",
        "percentage": 50,
        "amount": 1000,
        "dueDate": NOW,
        "status": "Pending",
        "isAchived": False,
        "createdAt": NOW,
        "updatedAt": NOW,
    }
    doc.update(overrides)
    return doc


class FailingCollection:
    """Wraps a collection and makes one write method raise."""

    def __init__(self, collection, method="delete_many"):
        self._collection = collection
        self._method = method

    def _fail(self, *args, **kwargs):
        raise OperationFailure(f"simulated {self._method} failure")

    def __getattr__(self, name):
        if name == self._method:
            return self._fail
        return getattr(self._collection, name)


class InterleavedCollection:
    """Runs ``interleave`` once, right before the first update_one."""

    def __init__(self, collection, interleave):
        self._collection = collection
        self._interleave = interleave

    def update_one(self, *args, **kwargs):
        if self._interleave is not None:
            interleave, self._interleave = self._interleave, None
            interleave()
        return self._collection.update_one(*args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._collection, name)


class FailingDatabase:
    """A database whose named collections fail on delete_many."""

    def __init__(self, database, failing):
        self._database = database
        self._failing = set(failing)

    def __getitem__(self, name):
        collection = self._database[name]
        if name in self._failing:
            return FailingCollection(collection)
        return collection

    def __getattr__(self, name):
        return getattr(self._database, name)


class BrokenCollection:
    """A collection whose reads fail."""

    def find(self, *args, **kwargs):
        raise OperationFailure("simulated read failure")

    def find_one(self, *args, **kwargs):
        raise OperationFailure("simulated read failure")


class OverrideDatabase:
    """A database with some collections swapped out."""

    def __init__(self, database, overrides):
        self._database = database
        self._overrides = overrides

    def __getitem__(self, name):
        if name in self._overrides:
            return self._overrides[name]
        return self._database[name]
