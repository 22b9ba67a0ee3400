"""Shared test infrastructure for the FinderMeister test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- email_mock: mock EmailService recording notifications
- make_user / make_client / make_finder / make_admin: account factories
- make_find: factory for open Find rows
- api_client: factory for an HTTPX AsyncClient on a test app sharing db_session
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from findermeister.infra.database import Base

import findermeister.domain.models  # noqa: F401

from findermeister.domain.models import Find, User
from findermeister.services.auth_service import create_user


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Email service mock
# ---------------------------------------------------------------------------

@pytest.fixture
def email_mock():
    """Mock EmailService; every notify_* call is an AsyncMock."""
    mock = MagicMock()
    for name in (
        "notify_client_new_proposal",
        "notify_client_order_submission",
        "notify_finder_hired",
        "notify_finder_submission_approved",
        "notify_finder_submission_rejected",
        "notify_finder_payment_released",
        "notify_strike_issued",
    ):
        setattr(mock, name, AsyncMock(return_value=True))
    mock.send = AsyncMock(return_value=True)
    return mock


# ---------------------------------------------------------------------------
# Account factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db_session):
    """Factory that registers a user through the normal signup path.

    Usage:
        finder = await make_user("finder", email="f@test.com")
    """
    counter = {"n": 0}

    async def _factory(
        role: str = "client",
        email: str | None = None,
        password: str = "secret123",
        first_name: str = "Test",
        last_name: str | None = None,
    ) -> User:
        counter["n"] += 1
        return await create_user(
            db_session,
            email=email or f"{role}{counter['n']}@test.com",
            password=password,
            first_name=first_name,
            last_name=last_name or role.capitalize(),
            role=role,
        )

    return _factory


@pytest.fixture
def make_client(make_user):
    async def _factory(**kwargs) -> User:
        return await make_user("client", **kwargs)

    return _factory


@pytest.fixture
def make_finder(make_user):
    async def _factory(**kwargs) -> User:
        return await make_user("finder", **kwargs)

    return _factory


@pytest.fixture
def make_admin(make_user):
    async def _factory(**kwargs) -> User:
        return await make_user("admin", **kwargs)

    return _factory


# ---------------------------------------------------------------------------
# Find factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_find(db_session):
    """Factory that creates an open Find for a client.

    Usage:
        find = await make_find(client, title="Vintage lamp")
    """
    async def _factory(
        client: User,
        title: str = "Vintage record player",
        description: str = "Looking for a working 1970s turntable",
        category: str = "Electronics",
        budget_min: float | None = 50,
        budget_max: float | None = 200,
        status: str = "open",
    ) -> Find:
        find = Find(
            client_id=client.id,
            title=title,
            description=description,
            category=category,
            budget_min=budget_min,
            budget_max=budget_max,
            status=status,
        )
        db_session.add(find)
        await db_session.commit()
        await db_session.refresh(find)
        return find

    return _factory


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest.fixture
def api_client(db_session, email_mock):
    """Build an HTTPX AsyncClient wired to the full app with test overrides."""

    def _build() -> AsyncClient:
        from findermeister.app.main import app
        from findermeister.infra.database import get_db
        from findermeister.services.email_service import get_email_service

        async def _override_get_db():
            yield db_session

        app.dependency_overrides[get_db] = _override_get_db
        app.dependency_overrides[get_email_service] = lambda: email_mock
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")

    yield _build

    from findermeister.app.main import app

    app.dependency_overrides.clear()
