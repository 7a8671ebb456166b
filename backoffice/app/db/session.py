"""
Database session configuration.

This module handles database engine creation and session management
using SQLAlchemy with async support for PostgreSQL.
"""

import logging

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from backoffice.app.core.config import settings

logger = logging.getLogger(__name__)

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
    future=True,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Create declarative base for models
Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields an async database session. Any exception raised while the request
    holds the session rolls back the open transaction, so a failed ledger
    operation never leaves partial writes behind.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            logger.warning("Rolling back database session after request failure")
            await session.rollback()
            raise
        finally:
            await session.close()
