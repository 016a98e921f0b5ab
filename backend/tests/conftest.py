"""
Shared fixtures: a throwaway SQLite database per test, two tenants, and an
httpx client bound to the FastAPI app with the session and current user
dependencies overridden.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("AUTH_SECRET", "test-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from core.auth import current_active_user  # noqa: E402
from db.database import Base, User, get_async_session  # noqa: E402
from main import app  # noqa: E402


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker):
    """Session for arranging rows and asserting on them directly."""
    async with session_maker() as session:
        yield session


async def _create_user(session_maker, email: str) -> User:
    async with session_maker() as session:
        user = User(email=email, hashed_password="not-a-real-hash", is_active=True, is_verified=True)
        session.add(user)
        await session.commit()
        return user


@pytest_asyncio.fixture
async def user(session_maker) -> User:
    return await _create_user(session_maker, "owner@example.com")


@pytest_asyncio.fixture
async def other_user(session_maker) -> User:
    return await _create_user(session_maker, "intruder@example.com")


@pytest_asyncio.fixture
async def anon_client(session_maker):
    """Client with the real authentication dependencies."""

    async def override_get_async_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_async_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(anon_client, user):
    """Client authenticated as `user`."""
    app.dependency_overrides[current_active_user] = lambda: user
    yield anon_client


@pytest.fixture
def login_as():
    """Switch the authenticated tenant for subsequent requests."""

    def _login_as(u: User):
        app.dependency_overrides[current_active_user] = lambda: u

    return _login_as


@pytest.fixture
def make_product(client):
    async def _make_product(**overrides) -> dict:
        payload = {
            "name": "Ryzen 5 7600",
            "manufacturer": "AMD",
            "price": 199.99,
            "quantity": 10,
            "low_stock_at": 3,
        }
        payload.update(overrides)
        res = await client.post("/products/", json=payload)
        assert res.status_code == 201, res.text
        return res.json()

    return _make_product


@pytest.fixture
def make_category(client):
    async def _make_category(name: str) -> dict:
        res = await client.post("/categories/", json={"name": name})
        assert res.status_code == 201, res.text
        return res.json()

    return _make_category
