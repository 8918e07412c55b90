"""Shared fixtures: an in-memory Mongo, a controllable clock and seeded actors."""
import asyncio
from datetime import datetime

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from app.db.mongo import get_mongo_db
from app.db.mongo_indexes import ensure_indexes
from app.schemas.company_schema import CompanyIn
from app.schemas.task_schema import TaskIn
from app.services.company_registry import create_company
from app.services.task_engine import create_task
from app.utils import clock
from main import app
from tests.helpers import FakeClock, make_user


@pytest.fixture
def fake_clock(monkeypatch):
    fc = FakeClock(datetime(2025, 3, 3, 9, 0, 0))
    monkeypatch.setattr(clock, "utcnow", fc)
    return fc


@pytest.fixture
async def db():
    database = AsyncMongoMockClient()["taskledger_test"]
    await ensure_indexes(database)
    return database


@pytest.fixture
def admin():
    return make_user("Admin", role="admin")


@pytest.fixture
def alice():
    return make_user("Alice")


@pytest.fixture
def bob():
    return make_user("Bob")


@pytest.fixture
async def users(db, admin, alice, bob):
    """Persist the actors so reports can resolve names."""
    for u in (admin, alice, bob):
        await db["users"].insert_one({
            "_id": ObjectId(u["id"]),
            "name": u["name"],
            "email": f"{u['name'].lower()}@example.com",
            "role": u["role"],
        })
    return {"admin": admin, "alice": alice, "bob": bob}


@pytest.fixture
async def company(db, admin, fake_clock):
    return await create_company(db, CompanyIn(name="Acme", cost_per_hour=20, currency="eur"), admin)


@pytest.fixture
def task_factory(db, admin, company, fake_clock):
    async def _make(assigned, title="Write report", **kwargs):
        payload = TaskIn(
            title=title,
            company_id=kwargs.pop("company_id", company.id),
            assigned_users=[u["id"] for u in assigned],
            **kwargs,
        )
        return await create_task(db, payload, admin)

    return _make


@pytest.fixture
async def task(task_factory, alice):
    return await task_factory([alice])


@pytest.fixture
def api_db():
    """Database for HTTP tests; mongomock objects are not tied to an event loop."""
    database = AsyncMongoMockClient()["taskledger_api_test"]
    asyncio.run(ensure_indexes(database))
    return database


@pytest.fixture
def client(api_db):
    app.dependency_overrides[get_mongo_db] = lambda: api_db
    # Not used as a context manager so startup never dials a real server
    yield TestClient(app)
    app.dependency_overrides.clear()
