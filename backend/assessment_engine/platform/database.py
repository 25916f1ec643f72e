import os

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import settings

# Prefer public DB URL when set (so a local run can reach the hosted Postgres)
_database_url = os.environ.get("DATABASE_PUBLIC_URL") or settings.DATABASE_URL


def async_database_url(url: str) -> str:
    """Map a sync driver URL onto its async driver (asyncpg / aiosqlite)."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def create_engine_for(url: str, **kwargs) -> AsyncEngine:
    async_url = async_database_url(url)
    engine_kw: dict = {}
    if "sqlite" in async_url:
        # Timeout to avoid "database is locked" when several sessions share a file
        engine_kw = {"connect_args": {"timeout": 30}}
    else:
        engine_kw = {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}
    engine_kw.update(kwargs)
    return create_async_engine(async_url, **engine_kw)


def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables for the attempt store (dev/test; production uses migrations)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Lazily build the process-wide engine from settings."""
    global _engine
    if _engine is None:
        _engine = create_engine_for(_database_url)
    return _engine


class Base(DeclarativeBase):
    pass
