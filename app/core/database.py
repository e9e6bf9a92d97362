from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import get_database_settings


class Base(DeclarativeBase):
  pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def database_url() -> str | None:
  """Return the asyncpg flavored SQLAlchemy URL for the configured DSN."""
  url = get_database_settings().pg_dsn
  if url and url.startswith("postgresql://"):
    url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
  return url


def get_db_engine() -> AsyncEngine | None:
  global _engine
  settings = get_database_settings()
  url = database_url()
  if _engine is None and url:
    _engine = create_async_engine(url, echo=settings.debug, connect_args={"timeout": settings.pg_connect_timeout})
  return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
  global _session_factory
  if _session_factory is None:
    db_engine = get_db_engine()
    if db_engine is not None:
      _session_factory = async_sessionmaker(bind=db_engine, expire_on_commit=False, class_=AsyncSession)
  return _session_factory


def require_session_factory() -> async_sessionmaker[AsyncSession]:
  session_factory = get_session_factory()
  if session_factory is None:
    raise RuntimeError("Database connection is not configured (MARK_PG_DSN is missing).")
  return session_factory


async def get_db() -> AsyncGenerator[AsyncSession]:
  """Dependency to get a database session."""
  async with require_session_factory()() as session:
    yield session


async def dispose_engine() -> None:
  global _engine, _session_factory
  if _engine is not None:
    await _engine.dispose()
  _engine = None
  _session_factory = None
