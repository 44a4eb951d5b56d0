"""
Database connection and session management.

The engine and session factory live on an explicitly constructed `Database`
handle. The FastAPI lifespan owns one for the process (stored on
`app.state.database`); the CLI and Prefect flows create and dispose their own.
"""
import asyncio
from typing import AsyncGenerator, Any, Dict, Optional
from contextlib import asynccontextmanager

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.exc import OperationalError, DisconnectionError

from meterdash.core.config import Settings
from meterdash.core.logging import get_logger

logger = get_logger(__name__)

# Base class for database models
Base = declarative_base()

TRANSIENT_ERROR_KEYWORDS = (
    "connection", "timeout", "network", "closed", "lost",
    "server closed", "connection reset",
)


def _is_transient(error: Exception) -> bool:
    error_str = str(error).lower()
    return any(keyword in error_str for keyword in TRANSIENT_ERROR_KEYWORDS)


class Database:
    """Owns an async engine and its session factory."""

    def __init__(
        self,
        url: str,
        engine: Optional[AsyncEngine] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        **engine_kwargs: Any
    ):
        self.url = url
        self.engine = engine or create_async_engine(url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Build a pooled PostgreSQL handle from application settings."""
        engine_kwargs: Dict[str, Any] = {"echo": False}
        if settings.DATABASE_URL.startswith("postgresql"):
            engine_kwargs.update(
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_pre_ping=True,
                pool_recycle=3600,
                connect_args={
                    "command_timeout": 30,
                    "server_settings": {
                        "application_name": "meterdash",
                    },
                },
            )
        return cls(settings.DATABASE_URL, **engine_kwargs)

    async def create_all(self) -> None:
        """Create all tables (local development; use migrations elsewhere)."""
        # Register models on Base.metadata
        import meterdash.models.database  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Context manager for a database session with retry logic.

        Commits when the block exits cleanly and rolls back on any error.
        Transient connection failures while opening the session are retried
        with linear backoff; errors raised inside the block always propagate.
        """
        session = None
        for attempt in range(self.max_retries):
            try:
                session = self.session_factory()
                await session.connection()
                break
            except (OperationalError, DisconnectionError) as e:
                if session is not None:
                    await session.close()
                if attempt < self.max_retries - 1 and _is_transient(e):
                    logger.warning(
                        f"Database session creation failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {self.retry_delay * (attempt + 1)}s..."
                    )
                    await asyncio.sleep(self.retry_delay * (attempt + 1))
                    continue
                logger.error(f"Failed to create database session after {attempt + 1} attempts: {e}")
                raise

        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_database(request: Request) -> Database:
    """Return the process-wide database handle created in the app lifespan."""
    return request.app.state.database


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting a database session.
    """
    async with get_database(request).session() as session:
        yield session
