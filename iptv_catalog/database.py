"""
SQLite engine and sessions for the key-value store

`init_db()` is called once from the application lifespan; everything else goes
through `session_scope()`.
"""
import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from pathlib import Path

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from iptv_catalog.config import settings
from iptv_catalog.models import Base

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _sqlite_url(database_path: str) -> str:
    Path(database_path).parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite+aiosqlite:///{database_path}"


def _pragma_listener(journal_mode: str):
    """Connection hook applying the SQLite pragmas"""
    def configure_sqlite(dbapi_conn, _):
        cursor = dbapi_conn.cursor()
        cursor.execute(f"PRAGMA journal_mode = {journal_mode}")
        # Cache envelopes are a few MB at most
        cursor.execute("PRAGMA cache_size = -16000")
        cursor.execute("PRAGMA busy_timeout = 5000")
        cursor.close()

    return configure_sqlite


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory (initialized in init_db)"""
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() during startup.")
    return _session_factory


async def init_db(database_path: str | None = None, journal_mode: str | None = None) -> None:
    """
    Create the engine and the key-value table

    Args:
        database_path: SQLite file; defaults to settings
        journal_mode: SQLite journal mode; defaults to settings
    """
    global _engine, _session_factory

    database_path = database_path or settings.database_path
    journal_mode = journal_mode or settings.sqlite_journal_mode
    logger.info("Initializing database at %s (journal mode %s)", database_path, journal_mode)

    engine = create_async_engine(
        _sqlite_url(database_path),
        echo=False,
        connect_args={"timeout": 30, "check_same_thread": False},
    )
    event.listen(engine.sync_engine, "connect", _pragma_listener(journal_mode))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    _engine = engine
    _session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    logger.info("Database initialized successfully")


async def close_db() -> None:
    """Dispose of the engine; safe to call when it was never initialized"""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
    _session_factory = None


async def check_db() -> bool:
    """True when the database answers a trivial query"""
    if _session_factory is None:
        return False
    try:
        async with session_scope(begin=False) as session:
            await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Database health check failed: %s", exc)
        return False
    return True


@asynccontextmanager
async def session_scope(*, begin: bool = True) -> AsyncIterator[AsyncSession]:
    """
    Provide an async session with optional automatic transaction handling.

    Args:
        begin: When True (default), wrap the session in `session.begin()` for auto commit/rollback.
               When False, the session is committed on success and rolled back on error.
    """
    session_factory = get_session_factory()

    async with session_factory() as session:
        if begin:
            async with session.begin():
                yield session
        else:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            else:
                await session.commit()
