"""Async engine, session factory and schema bootstrap for the marketplace DB."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from findermeister.app.config import get_settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


settings = get_settings()

_is_sqlite = settings.database_url.startswith("sqlite")


def _engine_options() -> dict:
    if _is_sqlite:
        # Concurrent accepts and token debits queue on the write lock instead of failing
        return {
            "echo": False,
            "connect_args": {
                "check_same_thread": False,
                "timeout": settings.sqlite_busy_timeout_seconds,
            },
        }
    return {"echo": False, "pool_size": 5, "max_overflow": 10}


engine = create_async_engine(settings.database_url, **_engine_options())

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency: yield an async database session."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Create any missing tables. Called once from the app lifespan."""
    import findermeister.domain.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if _is_sqlite:
        # The maintenance loop expires strikes and releases escrow on its own
        # session; WAL keeps request reads from blocking behind those writes.
        async with engine.begin() as conn:
            await conn.execute(text("PRAGMA journal_mode=WAL"))
            await conn.execute(
                text(f"PRAGMA busy_timeout={settings.sqlite_busy_timeout_seconds * 1000}")
            )
