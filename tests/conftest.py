import os
from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

os.environ.setdefault("MONGODB_DB_NAME", "ecopoints_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("TIMEZONE", "Asia/Ho_Chi_Minh")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[None, None]:
    """Fresh in-memory database per test."""
    from ecopoints.db.init import init_db
    await init_db(client=AsyncMongoMockClient())
    yield


@pytest_asyncio.fixture
async def client(db) -> AsyncGenerator[AsyncClient, None]:
    from ecopoints.main import app
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def account(db):
    from ecopoints.services.accounts import create_account
    return await create_account("Test User", "user@example.com", phone="0901234567", address="12 Green Street")


@pytest_asyncio.fixture
async def admin(db):
    from ecopoints.services.accounts import create_account
    return await create_account("Admin", "admin@example.com", role="admin")


def login(client: AsyncClient, account) -> None:
    from ecopoints.core.security import create_session_cookie
    from ecopoints.deps import SESSION_COOKIE_NAME
    from ecopoints.services.accounts import session_payload_for_account
    client.cookies.set(SESSION_COOKIE_NAME, create_session_cookie(session_payload_for_account(account)))
