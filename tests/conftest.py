"""
Pytest configuration and fixtures for the ReIDentify backend tests.
"""

import asyncio
import os

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
os.environ["STORE_BACKEND"] = "memory"
os.environ["FACULTY_CHECK_TIMEOUT_MS"] = "200"
os.environ.pop("CORS_ORIGINS", None)
os.environ.pop("REJECT_UNKNOWN_STATUS", None)

from idcard_backend.database import InMemoryDocumentStore, StoreError
from idcard_backend.main import app, get_store
from idcard_backend.main import store as app_store


class FailingStore(InMemoryDocumentStore):
    """Store whose reads and writes all fail, as if the database were down."""

    async def find_all(self, collection, *args, **kwargs):
        raise StoreError("connection refused")

    async def find_by_id(self, collection, doc_id, session=None):
        raise StoreError("connection refused")

    async def exists(self, collection, query, max_time_ms=None):
        raise StoreError("connection refused")


class UnreachableStore(FailingStore):
    """Store that cannot be reached at startup either."""

    async def open(self):
        raise StoreError("server selection timed out")

    async def ensure_indexes(self):
        raise StoreError("server selection timed out")


class BrokenStore(InMemoryDocumentStore):
    """Store that fails with an error outside the store taxonomy."""

    async def find_all(self, collection, *args, **kwargs):
        raise RuntimeError("unexpected driver state")


class SlowStore(InMemoryDocumentStore):
    """Store whose faculty lookups never finish in time."""

    async def exists(self, collection, query, max_time_ms=None):
        await asyncio.sleep(5)
        return True


class CopyFailingStore(InMemoryDocumentStore):
    """Store that accepts reads but fails every insert."""

    async def insert_one(self, collection, document, session=None):
        raise StoreError("write concern error")


@pytest.fixture
def store():
    """The app's in-memory store, emptied before each test."""
    app_store.clear()
    yield app_store
    app_store.clear()


@pytest.fixture
def client(store):
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def seed(store):
    """Insert a document into a collection of the app store and return its id."""

    def _seed(collection, document):
        return asyncio.run(store.insert_one(collection, document))

    return _seed


@pytest.fixture
def failing_store():
    return FailingStore()


@pytest.fixture
def unreachable_store():
    return UnreachableStore()


@pytest.fixture
def broken_store():
    return BrokenStore()


@pytest.fixture
def slow_store():
    return SlowStore()


@pytest.fixture
def copy_failing_store():
    return CopyFailingStore()


@pytest.fixture
def override_store():
    """Swap the store used by request handlers for the duration of a test."""

    def _override(replacement):
        app.dependency_overrides[get_store] = lambda: replacement
        return replacement

    yield _override
    app.dependency_overrides.pop(get_store, None)
