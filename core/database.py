"""
Database Management and Configuration.

This module sets up the asynchronous database connection for the Video
Platform API. It uses SQLAlchemy's asyncio extension with SQLModel table
models.

Key Components:
- `engine`: The SQLAlchemy async engine, configured from the `DATABASE_URL`
  environment variable. SQLite (`aiosqlite`) is the development default;
  PostgreSQL (`asyncpg`) URLs are supported unchanged.
- `async_session`: Session factory used by the request dependency and by
  startup code.
- `create_db_and_tables`: Creates every table registered on the SQLModel
  metadata. Called from the application lifespan.
- `get_session`: FastAPI dependency yielding one session per request.
- `get_database_info`: Diagnostic information for the health endpoints.

Single-document atomicity is delegated to the database: every service
operation commits at most once, and rolls back on failure.
"""

import os
import logging
from typing import AsyncGenerator, Dict, Any
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from core.exceptions import ConflictError, InternalError

# Register table models on the metadata before create_all runs
from core import models  # noqa: F401

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./video_api.db")

logger = logging.getLogger(__name__)


def build_engine(database_url: str = DATABASE_URL) -> AsyncEngine:
    """Create an async engine with settings suited to the database type"""
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=False,  # Set to True for SQL debugging
        )

    return create_async_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Validate connections before use
        echo=False,
    )


engine = build_engine()

# Objects stay usable after commit; services return them to the HTTP layer
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_db_and_tables(bind: AsyncEngine = None):
    """
    Initialize the database and create all tables.
    Called during application startup.
    """
    bind = bind or engine
    try:
        async with bind.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info("Video API database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to create Video API database tables: {e}")
        raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Get an async database session for dependency injection.
    """
    async with async_session() as session:
        yield session


def _database_type(database_url: str) -> str:
    return "postgresql" if "postgresql" in database_url else "sqlite"


async def get_database_info() -> Dict[str, Any]:
    """
    Get basic database information for health checks.
    """
    try:
        async with async_session() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            connection_healthy = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        connection_healthy = False

    return {
        # Hide credentials
        "database_url": DATABASE_URL.split("@")[1] if "@" in DATABASE_URL else "masked",
        "connection_healthy": connection_healthy,
        "database_type": _database_type(DATABASE_URL),
    }


async def commit_or_raise(session: AsyncSession, operation: str):
    """
    Commit the session, rolling back and translating database failures.

    A uniqueness violation surfaces as `ConflictError`; any other database
    error surfaces as `InternalError`.
    """
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.warning(f"Integrity error during '{operation}': {e.orig}")
        raise ConflictError(f"Operation '{operation}' conflicts with an existing record") from e
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Database operation '{operation}' failed: {e}")
        raise InternalError(
            f"Database operation '{operation}' failed",
            details={"operation": operation},
        ) from e
