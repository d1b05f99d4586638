"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - engine: The async database engine (connection pool for production DBs)
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - UTCDateTime: Column type that always hands back timezone-aware UTC values
  - get_db(): FastAPI dependency that provides a session per request

Session lifecycle:
  Each API request gets its own session via get_db(), which is also the
  request's transaction. Work that must change several rows together
  (consuming a reset code while replacing the password hash, revoking every
  session) happens inside that one transaction and becomes visible atomically
  at commit.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from authcore.config import settings
from authcore.exceptions import AuthCoreError


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
)

# expire_on_commit=False prevents lazy-load errors after commit in async context.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    DateTime column that stores UTC and always returns aware datetimes.

    SQLite drops tzinfo on the way out, PostgreSQL keeps it. Normalizing here
    means service code can compare loaded values against utcnow() on any
    backend.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


async def get_db():
    """
    FastAPI dependency that provides a database session.

    Committed on success and rolled back on unexpected exceptions. Domain
    errors (AuthCoreError) still commit: a rejected login must persist its
    failed-attempt counter, and a failed MFA confirmation must persist the
    discarded enrollment.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except AuthCoreError:
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise
