"""Async SQLAlchemy engine, session dependency and schema management."""

from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from quest_core.core.config import settings
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def build_engine(url: str) -> AsyncEngine:
    """Create the async engine, applying pool options only where the driver pools."""
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.database_echo, future=True)

    return create_async_engine(
        url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        echo=settings.database_echo,
        future=True,
        # PgBouncer in transaction mode cannot hold prepared statements
        connect_args={"statement_cache_size": 0},
    )


engine = build_engine(settings.database_url)

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request.

    Yields:
        AsyncSession: Database session
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


class DatabaseClient:
    """Relational store client with connection checks and schema creation."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._connected = False

    async def connect(self) -> bool:
        """Open a connection and run a trivial statement."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            self._connected = True
            LOGGER.info("Database connection successful")
            return True
        except Exception:
            self._connected = False
            LOGGER.error("Database connection failed", exc_info=True)
            raise

    async def disconnect(self) -> None:
        try:
            await self.engine.dispose()
            self._connected = False
            LOGGER.info("Database connection closed")
        except Exception as e:
            LOGGER.error("Error closing database connection", exc_info=True, extra={"error": str(e)})

    async def create_tables(self) -> None:
        """Create missing tables without touching existing ones."""
        # Registers every mapped class on Base.metadata
        from quest_core.database import models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            LOGGER.info("Database tables created/verified successfully")
        except Exception as e:
            LOGGER.error("Failed to create database tables", exc_info=True, extra={"error": str(e)})
            raise

    async def drop_tables(self) -> None:
        """Drop all tables. Destroys data."""
        from quest_core.database import models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
            LOGGER.warning("All database tables dropped")
        except Exception as e:
            LOGGER.error("Failed to drop database tables", exc_info=True, extra={"error": str(e)})
            raise

    async def auto_migrate(self, drop_existing: bool = False) -> None:
        LOGGER.info("Starting auto-migration", extra={"drop_existing": drop_existing})
        if drop_existing:
            await self.drop_tables()
        await self.create_tables()
        LOGGER.info("Auto-migration completed successfully")

    async def health_check(self) -> dict:
        """Report whether the relational store answers queries."""
        try:
            async with self.engine.connect() as conn:
                val = await conn.scalar(text("SELECT 1"))
            self._connected = True
            return {"status": "healthy", "connected": True, "latency_test": "passed" if val == 1 else "failed"}
        except Exception as e:
            self._connected = False
            LOGGER.error("Database health check failed", extra={"error": str(e)})
            return {"status": "unhealthy", "connected": False, "error": str(e)}


db_client = DatabaseClient(engine)


async def init_database(auto_migrate: bool = True, drop_existing: bool = False) -> None:
    """Connect to the relational store and optionally create the schema.

    Args:
        auto_migrate: Whether to create missing tables on startup
        drop_existing: Whether to drop existing tables first (data loss)
    """
    try:
        LOGGER.info("Initializing database connection...")
        await db_client.connect()
        if auto_migrate:
            await db_client.auto_migrate(drop_existing=drop_existing)
        LOGGER.info("Database initialization completed")
    except Exception as e:
        LOGGER.error("Database initialization failed", exc_info=True, extra={"error": str(e)})
        raise


async def close_database() -> None:
    try:
        await db_client.disconnect()
    except Exception as e:
        LOGGER.error("Error closing database", exc_info=True, extra={"error": str(e)})
