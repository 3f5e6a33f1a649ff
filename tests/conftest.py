"""Shared fixtures: an in-memory stand-in for the motor collection and a TestClient wired to it."""
from __future__ import annotations

import os
from datetime import date
from types import SimpleNamespace

import pytest

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")

from models.transaction import Transaction  # noqa: E402

TODAY = date(2024, 3, 15)


def _matches(doc: dict, query: dict) -> bool:
    for key, expected in query.items():
        if isinstance(expected, dict) and "$ne" in expected:
            if doc.get(key) == expected["$ne"]:
                return False
        elif doc.get(key) != expected:
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self._docs = list(docs)

    def sort(self, keys):
        for field, direction in reversed(keys):
            self._docs.sort(key=lambda d: (d.get(field) is not None, d.get(field)), reverse=direction < 0)
        return self

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self):
        try:
            return dict(next(self._iter))
        except StopIteration:
            raise StopAsyncIteration


class FakeDatabase:
    def __init__(self):
        self._collections = {}

    def get_collection(self, name):
        if name not in self._collections:
            self._collections[name] = FakeCollection(name, self)
        return self._collections[name]


class FakeCollection:
    """Implements just the motor collection calls the service layer makes."""

    def __init__(self, name="transactions", database=None):
        self.name = name
        self.database = database or FakeDatabase()
        self.database._collections.setdefault(name, self)
        self.docs = []
        self.indexes = []

    def find(self, query=None):
        return FakeCursor(d for d in self.docs if _matches(d, query or {}))

    async def find_one(self, query=None, sort=None):
        cursor = self.find(query)
        if sort:
            cursor.sort(sort)
        docs = cursor._docs
        return dict(docs[0]) if docs else None

    async def insert_one(self, doc):
        self.docs.append(dict(doc))
        return SimpleNamespace(inserted_id=len(self.docs))

    async def delete_one(self, query):
        for i, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def update_many(self, query, update):
        modified = 0
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(update.get("$set", {}))
                modified += 1
        return SimpleNamespace(modified_count=modified)

    async def update_one(self, query, update, upsert=False):
        doc = self._find_or_upsert(query, upsert)
        for key, value in update.get("$max", {}).items():
            doc[key] = max(doc.get(key, value), value)
        return SimpleNamespace(modified_count=1)

    async def find_one_and_update(self, query, update, upsert=False, return_document=None):
        doc = self._find_or_upsert(query, upsert)
        for key, value in update.get("$inc", {}).items():
            doc[key] = doc.get(key, 0) + value
        return dict(doc)

    async def create_index(self, keys, **kwargs):
        self.indexes.append((keys, kwargs))
        return "_".join(f"{k}_{d}" for k, d in keys)

    def _find_or_upsert(self, query, upsert):
        for doc in self.docs:
            if _matches(doc, query):
                return doc
        if not upsert:
            raise KeyError(query)
        doc = dict(query)
        self.docs.append(doc)
        return doc


class BrokenCollection(FakeCollection):
    def find(self, query=None):
        raise RuntimeError("connection reset")


def tx(id, day, amount, type, reason="Misc", description=""):
    """Builds a Transaction from an ISO date string."""
    return Transaction(
        id=id,
        date=date.fromisoformat(day),
        amount=amount,
        type=type,
        reason=reason,
        description=description,
    )


@pytest.fixture
def collection():
    return FakeCollection()


@pytest.fixture
def client(collection):
    from fastapi.testclient import TestClient
    from main import app
    from routes import get_transactions_collection, get_today

    app.dependency_overrides[get_transactions_collection] = lambda: collection
    app.dependency_overrides[get_today] = lambda: TODAY
    yield TestClient(app)
    app.dependency_overrides.clear()
