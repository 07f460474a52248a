"""
Shared test fixtures for the CaseAce backend test suite.

Sets up an async SQLite in-memory database per test, overrides FastAPI
dependencies, and provides pre-authenticated HTTP clients for the partner,
associate, paralegal and client roles.
"""

import os
import uuid
from datetime import UTC, datetime, timedelta

import factory
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# ---- Environment overrides MUST come before any caseace imports ----
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests"
os.environ["FIRST_PARTNER_EMAIL"] = "partner@test.com"
os.environ["FIRST_PARTNER_PASSWORD"] = "PartnerPass123!"
os.environ["SMTP_HOST"] = ""
os.environ["ENVIRONMENT"] = "test"

from caseace.auth.models import User, UserRole  # noqa: E402
from caseace.auth.service import create_access_token, hash_password  # noqa: E402
from caseace.database import Base, get_db  # noqa: E402
from caseace.main import app  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite://"


def _configure_sqlite(engine) -> None:
    """FK enforcement, plus explicit BEGIN so SAVEPOINTs nest inside the outer transaction."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn, _connection_record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


# ---------------------------------------------------------------------------
# Database lifecycle
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture(autouse=True)
async def session_factory():
    """Fresh in-memory database for every test, wired into ``get_db``."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool, echo=False)
    _configure_sqlite(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory_ = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _override_get_db():
        async with factory_() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _override_get_db
    yield factory_
    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncSession:
    """Provide a DB session for direct service-layer tests."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# External collaborators
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def fake_object_storage(monkeypatch):
    """Keep MinIO out of the tests; record what would have been stored."""
    stored: dict[str, bytes] = {}
    removed: list[str] = []

    def _store(storage_key, content, content_type):
        stored[storage_key] = content

    def _remove(storage_key):
        removed.append(storage_key)
        stored.pop(storage_key, None)

    monkeypatch.setattr("caseace.documents.service.store_object", _store)
    monkeypatch.setattr("caseace.documents.service.remove_stored_object", _remove)
    monkeypatch.setattr("caseace.cases.router.remove_stored_object", _remove)
    monkeypatch.setattr(
        "caseace.documents.router.get_download_url", lambda key: f"http://storage.test/{key}?signed=1"
    )
    return {"stored": stored, "removed": removed}


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing mail instead of logging it."""
    outbox: list[dict] = []

    async def _send(to_email, subject, html):
        outbox.append({"to": to_email, "subject": subject, "html": html})

    monkeypatch.setattr("caseace.emails.service.send_email", _send)
    return outbox


# ---------------------------------------------------------------------------
# HTTP client fixture
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def client() -> AsyncClient:
    """Unauthenticated httpx async client wired to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Helper: create a user directly in the database
# ---------------------------------------------------------------------------
async def create_test_user(
    session_factory,
    email: str,
    role: UserRole,
    name: str = "Test User",
    password: str = "SecurePass123!",
) -> User:
    """Insert a user into the test database and return it."""
    user = User(
        id=uuid.uuid4(),
        email=email,
        password_hash=hash_password(password),
        name=name,
        role=role,
        is_active=True,
    )
    async with session_factory() as session:
        session.add(user)
        await session.commit()
        await session.refresh(user)
    return user


def auth_header(user: User) -> dict[str, str]:
    token = create_access_token(str(user.id), user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def partner_user(session_factory) -> User:
    return await create_test_user(session_factory, "partner@caseace-test.com", UserRole.partner, "Paula Partner")


@pytest_asyncio.fixture
async def associate_user(session_factory) -> User:
    return await create_test_user(session_factory, "associate@caseace-test.com", UserRole.associate, "Andy Associate")


@pytest_asyncio.fixture
async def paralegal_user(session_factory) -> User:
    return await create_test_user(session_factory, "paralegal@caseace-test.com", UserRole.paralegal, "Pat Paralegal")


@pytest_asyncio.fixture
async def client_user(session_factory) -> User:
    return await create_test_user(session_factory, "client@caseace-test.com", UserRole.client, "Carla Client")


async def _authed_client(user: User):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        ac.headers.update(auth_header(user))
        yield ac


@pytest_asyncio.fixture
async def partner_client(partner_user: User) -> AsyncClient:
    """AsyncClient pre-authenticated as a partner."""
    async for ac in _authed_client(partner_user):
        yield ac


@pytest_asyncio.fixture
async def associate_client(associate_user: User) -> AsyncClient:
    """AsyncClient pre-authenticated as an associate."""
    async for ac in _authed_client(associate_user):
        yield ac


@pytest_asyncio.fixture
async def paralegal_client(paralegal_user: User) -> AsyncClient:
    """AsyncClient pre-authenticated as a paralegal."""
    async for ac in _authed_client(paralegal_user):
        yield ac


@pytest_asyncio.fixture
async def client_client(client_user: User) -> AsyncClient:
    """AsyncClient pre-authenticated as a client (portal user)."""
    async for ac in _authed_client(client_user):
        yield ac


# ---------------------------------------------------------------------------
# Factory Boy factories
# ---------------------------------------------------------------------------
class UserFactory(factory.Factory):
    class Meta:
        model = dict

    email = factory.LazyFunction(lambda: f"user-{uuid.uuid4().hex[:8]}@caseace-test.com")
    password = "SecurePass123!"
    name = factory.Faker("name")
    role = "client"


class CaseFactory(factory.Factory):
    class Meta:
        model = dict

    case_name = factory.Faker("catch_phrase")
    description = factory.Faker("sentence")
    practice_area = "Litigation"


class TimeEntryFactory(factory.Factory):
    class Meta:
        model = dict

    description = factory.Faker("sentence")
    type = "research"
    start_time = factory.LazyFunction(lambda: (datetime.now(UTC) - timedelta(hours=2)).isoformat())
    duration_minutes = 60
    rate_cents = 20000
    billable = True


# ---------------------------------------------------------------------------
# Convenience fixture: a case already in the DB
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def sample_case(partner_client: AsyncClient, client_user: User, associate_user: User) -> dict:
    """A case for ``client_user`` with the associate assigned, created via the API."""
    data = CaseFactory(client_id=str(client_user.id), assigned_user_ids=[str(associate_user.id)])
    resp = await partner_client.post("/api/cases", json=data)
    assert resp.status_code == 201, resp.text
    return resp.json()
