from __future__ import annotations

import os

# Settings are read at import time; give the app a harmless default database.
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DATABASE_URL_SYNC", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

from typing import Any, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.core.security import create_access_token
from app.db.session import get_db
from app.integrations.evolution import EvolutionGateway, get_evolution_gateway
from app.integrations.instagram_graph import InstagramGraphClient, get_instagram_graph_client

# Ensure Base + models are registered before create_all
from app.db.base import Base  # noqa: F401
import app.models  # noqa: F401
from app.models.company import Company
from app.models.user import User


# ---------------------------------------------------------
# Database: one SQLite file per test, FKs enforced
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # let SQLAlchemy emit BEGIN itself so SAVEPOINT works
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture()
def sessionmaker(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture()
async def db(sessionmaker):
    """
    Session for test setup. Assertions after a request should open a fresh
    session so they see committed state.
    """
    async with sessionmaker() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------
# External APIs
# ---------------------------------------------------------
class FakeEvolution:
    """Connection-state endpoint keyed by instance key."""

    def __init__(self):
        self.states: dict[str, Any] = {}
        self.calls: list[tuple[str, str, Optional[str]]] = []

    def set_state(self, key: str, state: str, *, nested: bool = True) -> None:
        body = {"instance": {"instanceName": key, "state": state}} if nested else {"state": state}
        self.states[key] = (200, body)

    def set_status(self, key: str, status_code: int) -> None:
        self.states[key] = (status_code, {"message": "error"})

    def fail(self, key: str) -> None:
        self.states[key] = "network"

    def handler(self, request: httpx.Request) -> httpx.Response:
        key = request.url.path.rsplit("/", 1)[-1]
        self.calls.append((str(request.url.host), key, request.headers.get("apikey")))

        configured = self.states.get(key)
        if configured is None:
            return httpx.Response(404, json={"message": f"instance {key} not found"})
        if configured == "network":
            raise httpx.ConnectError("connection refused", request=request)
        status_code, body = configured
        return httpx.Response(status_code, json=body)


class FakeGraph:
    """Graph API: tokens in valid_tokens can read /me and pages in pages."""

    def __init__(self):
        self.valid_tokens: set[str] = set()
        self.pages: set[str] = set()
        self.timeout = False
        self.calls: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url.path)
        if self.timeout:
            raise httpx.ReadTimeout("graph too slow", request=request)

        token = request.url.params.get("access_token")
        if token not in self.valid_tokens:
            return httpx.Response(
                400,
                json={"error": {"message": "Invalid OAuth access token.", "type": "OAuthException", "code": 190}},
            )

        target = request.url.path.rsplit("/", 1)[-1]
        if target == "me":
            return httpx.Response(200, json={"id": "17841400000000", "name": "Owner"})
        if target in self.pages:
            return httpx.Response(200, json={"id": target, "name": "Store page"})
        return httpx.Response(
            400,
            json={"error": {"message": f"Unsupported get request. Object with ID '{target}' does not exist"}},
        )


@pytest.fixture()
def evolution() -> FakeEvolution:
    return FakeEvolution()


@pytest.fixture()
def graph() -> FakeGraph:
    return FakeGraph()


# ---------------------------------------------------------
# FastAPI app + dependency overrides
# ---------------------------------------------------------
@pytest.fixture()
def app(sessionmaker, evolution, graph):
    from app.main import app as fastapi_app

    async def _override_get_db():
        async with sessionmaker() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    fastapi_app.dependency_overrides[get_evolution_gateway] = lambda: EvolutionGateway(
        timeout=2.0, transport=httpx.MockTransport(evolution.handler)
    )
    fastapi_app.dependency_overrides[get_instagram_graph_client] = lambda: InstagramGraphClient(
        base_url="https://graph.test/v18.0", timeout=2.0, transport=httpx.MockTransport(graph.handler)
    )
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------
# Factories
# ---------------------------------------------------------
def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


async def create_user(db, email: str, role: str = "ADMIN", company_id: Optional[int] = None) -> User:
    user = User(email=email.lower().strip(), role=role, company_id=company_id, is_active=True)
    db.add(user)
    await db.commit()
    return user


async def create_company(db, name: str = "Acme", **fields) -> Company:
    company = Company(name=name, **fields)
    db.add(company)
    await db.commit()
    return company


@pytest_asyncio.fixture()
async def operator(db) -> User:
    return await create_user(db, "ops@platform.test", role="SUPERADMIN")


@pytest.fixture()
def operator_headers(operator) -> dict[str, str]:
    return auth_headers(operator)
