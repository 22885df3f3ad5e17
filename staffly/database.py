"""Async SQLAlchemy engine and session management."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from staffly.config import settings

# Async engine for FastAPI
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,
)

# Async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def dialect_name(db: AsyncSession) -> str:
    """Name of the SQL dialect bound to *db* (``postgresql``, ``sqlite``...)."""
    return db.get_bind().dialect.name


async def get_db() -> AsyncSession:
    """FastAPI dependency: one unit of work per request.

    Commits when the handler returns normally and rolls back on any
    exception, so a failed leave or attendance transition leaves no
    partial writes behind.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
