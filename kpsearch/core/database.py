"""
Database configuration and session management
"""
from contextlib import asynccontextmanager, contextmanager

from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import Session, sessionmaker

from kpsearch.core.config import settings

# Convert postgresql:// to postgresql+asyncpg:// for async support
DATABASE_URL = settings.database_url.replace("postgresql://", "postgresql+asyncpg://")

# Sync URL for batch jobs (uses psycopg2)
SYNC_DATABASE_URL = settings.database_url.replace("postgresql+asyncpg://", "postgresql://")

engine = create_async_engine(
    DATABASE_URL,
    echo=settings.debug,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
)

AsyncSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def get_db_session():
    """Get async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_db():
    """FastAPI dependency for database sessions"""
    async with get_db_session() as session:
        yield session


# Sync engine for batch jobs, created on first use so the API never opens it
_sync_session_factory = None


def _get_sync_session_factory():
    global _sync_session_factory
    if _sync_session_factory is None:
        sync_engine = create_engine(SYNC_DATABASE_URL, pool_size=2, max_overflow=3)
        _sync_session_factory = sessionmaker(sync_engine, class_=Session, expire_on_commit=False)
    return _sync_session_factory


@contextmanager
def get_sync_db_session():
    """Get synchronous database session for batch jobs"""
    session = _get_sync_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
