"""Shared fixtures: an in-memory store, a service on top of it, and an API client."""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from bonfire.config import Settings
from bonfire.database import MemoryStore
from bonfire.errors import StorageError
from bonfire.main import app, get_settings, get_shared_service
from bonfire.service import BonfireService


class FlakyStore(MemoryStore):
    """MemoryStore that starts failing every call once ``broken`` is set."""

    def __init__(self):
        super().__init__()
        self.broken = False

    def _check(self):
        if self.broken:
            raise StorageError("The caller does not have permission")

    async def get_headers(self, table):
        self._check()
        return await super().get_headers(table)

    async def get_rows(self, table):
        self._check()
        return await super().get_rows(table)

    async def append_rows(self, table, records):
        self._check()
        await super().append_rows(table, records)

    async def update_row(self, table, row_id, record):
        self._check()
        await super().update_row(table, row_id, record)

    async def delete_row(self, table, row_id):
        self._check()
        await super().delete_row(table, row_id)


class SlowStore(MemoryStore):
    """Yields to the event loop on every read so concurrent writers interleave."""

    async def get_rows(self, table):
        rows = await super().get_rows(table)
        await asyncio.sleep(0)
        return rows


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest_asyncio.fixture
async def service(store: FlakyStore) -> BonfireService:
    svc = BonfireService(store)
    await svc.ensure_initialized()
    return svc


@pytest.fixture
def client(store: FlakyStore):
    svc = BonfireService(store)
    # routes still go through get_service, which initializes on first use
    app.dependency_overrides[get_shared_service] = lambda: svc
    app.dependency_overrides[get_settings] = lambda: Settings(storage_backend="memory")
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
