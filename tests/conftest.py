"""
Pytest configuration and shared fixtures.
"""

import copy
from contextlib import asynccontextmanager
from typing import Any, Dict, List

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from catalog.covers import CoverImageStorage
from catalog.database import CatalogDatabase
from catalog.models import AUTHORS, BOOKS, CATEGORIES


def _matches(document, field, value):
    current = document.get(field)
    if isinstance(current, list):
        return value in current
    return current == value


def _project(document, projection):
    if not projection:
        return copy.deepcopy(document)
    projected = {"_id": document["_id"]}
    for field in projection:
        if field in document:
            projected[field] = copy.deepcopy(document[field])
    return projected


class InMemoryCatalogDatabase(CatalogDatabase):
    """
    CatalogDatabase keeping the three collections in dicts.

    Only the storage primitives are replaced; ``populate`` is the real
    implementation. ``transaction`` yields ``session`` (None unless a test
    sets one) and counts blocks left by an exception in ``aborted``. Every
    write records the session it was given in ``write_sessions``.
    """

    def __init__(self):
        super().__init__("mongodb://memory", "test", use_transactions=False)
        self.collections: Dict[str, Dict[ObjectId, dict]] = {AUTHORS: {}, CATEGORIES: {}, BOOKS: {}}
        self.writes: List[tuple] = []
        self.write_sessions: List[Any] = []
        self.session: Any = None
        self.aborted = 0

    def _record(self, operation, collection, document_id, session):
        self.writes.append((operation, collection, document_id))
        self.write_sessions.append(session)

    @asynccontextmanager
    async def transaction(self):
        try:
            yield self.session
        except Exception:
            self.aborted += 1
            raise

    async def connect(self):
        pass

    async def disconnect(self):
        pass

    def snapshot(self):
        return copy.deepcopy(self.collections)

    def seed(self, collection, **fields):
        document = {"_id": ObjectId(), **fields}
        self.collections[collection][document["_id"]] = document
        return document["_id"]

    def get(self, collection, document_id):
        return self.collections[collection].get(document_id)

    async def find_all(self, collection, projection=None, session=None):
        return [_project(document, projection) for document in self.collections[collection].values()]

    async def find_by_id(self, collection, document_id, projection=None, session=None):
        document = self.collections[collection].get(document_id)
        return _project(document, projection) if document is not None else None

    async def find_by_ids(self, collection, document_ids, projection=None, session=None):
        wanted = set(document_ids)
        return [
            _project(document, projection)
            for document_id, document in self.collections[collection].items()
            if document_id in wanted
        ]

    async def count_referencing(self, collection, field, value, session=None):
        return sum(1 for document in self.collections[collection].values() if _matches(document, field, value))

    async def insert(self, collection, document, session=None):
        document = copy.deepcopy(document)
        document["_id"] = ObjectId()
        self.collections[collection][document["_id"]] = document
        self._record("insert", collection, document["_id"], session)
        return copy.deepcopy(document)

    async def update_by_id(self, collection, document_id, fields, session=None):
        document = self.collections[collection].get(document_id)
        if document is None:
            return None
        document.update(copy.deepcopy(fields))
        self._record("update", collection, document_id, session)
        return copy.deepcopy(document)

    async def delete_by_id(self, collection, document_id, session=None):
        document = self.collections[collection].pop(document_id, None)
        if document is not None:
            self._record("delete", collection, document_id, session)
        return document

    async def add_to_set(self, collection, document_ids, field, value, session=None):
        modified = 0
        for document_id in document_ids:
            document = self.collections[collection].get(document_id)
            if document is None:
                continue
            values = document.setdefault(field, [])
            if value not in values:
                values.append(value)
                modified += 1
            self._record("add_to_set", collection, document_id, session)
        return modified

    async def pull(self, collection, document_ids, field, value, session=None):
        modified = 0
        for document_id in document_ids:
            document = self.collections[collection].get(document_id)
            if document is None:
                continue
            values = document.get(field, [])
            if value in values:
                document[field] = [item for item in values if item != value]
                modified += 1
            self._record("pull", collection, document_id, session)
        return modified

    async def pull_everywhere(self, collection, field, value, session=None):
        matching = [
            document_id
            for document_id, document in self.collections[collection].items()
            if _matches(document, field, value)
        ]
        return await self.pull(collection, matching, field, value, session=session)

    async def get_stats(self):
        return {name: len(documents) for name, documents in self.collections.items()}

    async def health_check(self):
        return {"status": "healthy", "transactions": False, **(await self.get_stats())}


@pytest.fixture
def database():
    """Empty in-memory catalog."""
    return InMemoryCatalogDatabase()


@pytest.fixture
def catalog(database):
    """In-memory catalog with two authors and three categories, no books yet."""
    ids = {
        "tolkien": database.seed(AUTHORS, name="J. R. R. Tolkien", country="United Kingdom", books=[]),
        "le_guin": database.seed(AUTHORS, name="Ursula K. Le Guin", country="United States", books=[]),
        "fantasy": database.seed(CATEGORIES, name="Fantasy", books=[]),
        "classic": database.seed(CATEGORIES, name="Classic", books=[]),
        "adventure": database.seed(CATEGORIES, name="Adventure", books=[]),
    }
    return database, ids


@pytest.fixture
def cover_storage(tmp_path):
    """Cover storage writing to a temporary directory with a 1 KiB limit."""
    return CoverImageStorage(tmp_path / "uploads", max_size=1024)


@pytest.fixture
def app(database, cover_storage):
    """Application wired to the in-memory catalog; lifespan is not run."""
    from api.main import create_app

    application = create_app()
    application.state.database = database
    application.state.cover_storage = cover_storage
    return application


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app, raise_server_exceptions=False)
