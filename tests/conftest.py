import os

os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from timeledger.db import ensure_indexes, get_database
from timeledger.main import app
from timeledger.schemas.settings import UpdateSettings
from timeledger.utils.app_utils import create_access_token
from timeledger.utils.settings_utils import update_owner_settings

OWNER_ID = "owner-1"
OTHER_OWNER_ID = "owner-2"


def auth_headers(owner_id: str) -> dict:
    token = create_access_token({"sub": owner_id}, timedelta(hours=1))
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def database():
    """Fresh in-memory database per test, with the production indexes."""
    client = AsyncMongoMockClient()
    test_database = client["timeledger_test"]
    await ensure_indexes(test_database)
    return test_database


@pytest_asyncio.fixture
async def owner_settings(database):
    """Owner working at UTC-3 with a default rate of 50."""
    return await update_owner_settings(
        database, OWNER_ID, UpdateSettings(timezone_offset="UTC-3", default_hourly_rate=50.0)
    )


@pytest_asyncio.fixture
async def client(database):
    app.dependency_overrides[get_database] = lambda: database
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers():
    return auth_headers(OWNER_ID)


@pytest.fixture
def other_owner_headers():
    return auth_headers(OTHER_OWNER_ID)
