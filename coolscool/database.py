"""
Database connection and session management.
Uses SQLAlchemy 2.0 async pattern.

The engine is owned by a Database handle that the application lifespan
creates and disposes; services receive an AsyncSession, never the engine.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import NullPool

from coolscool.errors import ConflictError
from coolscool.logging_config import get_logger

logger = get_logger(__name__)


def _set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable WAL mode + foreign keys on every new SQLite connection."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


class Database:
    """
    Owns the async engine and session factory for one process.

    Usage:
        db = Database(settings.database_url)
        async with db.session() as session:
            ...
        await db.dispose()
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.is_sqlite = url.startswith("sqlite")

        if self.is_sqlite:
            # NullPool: every session gets its own connection, so two sessions
            # never share one sqlite transaction.
            self.engine: AsyncEngine = create_async_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=NullPool,
            )
            event.listen(self.engine.sync_engine, "connect", _set_sqlite_pragma)
        else:
            self.engine = create_async_engine(
                url,
                echo=echo,
                pool_pre_ping=True,
                pool_size=5,
                max_overflow=10,
            )

        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    def session(self) -> AsyncSession:
        """Open a new session (use as an async context manager)."""
        return self.session_maker()

    async def create_all(self) -> None:
        """Create all tables. Migrations are preferred outside of tests."""
        from coolscool.kernel.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        """Round-trip SELECT 1; False when the database cannot be reached."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("Database ping failed", extra={"error": type(exc).__name__})
            return False
        return True

    async def dispose(self) -> None:
        """Close database connections."""
        await self.engine.dispose()


@asynccontextmanager
async def session_scope(database: Database) -> AsyncIterator[AsyncSession]:
    """Yield a session that commits on success and rolls back on any error."""
    async with database.session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def flush_or_conflict(session: AsyncSession, entity: str, entity_id: Optional[object] = None) -> None:
    """
    Flush pending changes, turning lost optimistic-concurrency races into ConflictError.

    A stale version counter (StaleDataError) or a unique-key collision
    (IntegrityError) both mean another writer got there first.
    """
    try:
        await session.flush()
    except (StaleDataError, IntegrityError) as exc:
        logger.warning(
            "Concurrent write lost",
            extra={"entity": entity, "entity_id": str(entity_id) if entity_id else None, "error": type(exc).__name__},
        )
        raise ConflictError(
            f"{entity} was modified by another request; reload and retry"
        ) from exc
