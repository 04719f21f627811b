"""
Inkwell Backend — Database Session Management
===============================================

What:  Async SQLAlchemy engine, session factory, scoped transactions and the
       FastAPI session dependency.
How:   `build_engine()` creates a pooled engine for PostgreSQL (asyncpg) or a
       NullPool engine for SQLite (aiosqlite). `get_db_session()` gives each
       request a session that commits on success and rolls back on error.
       `transaction()` is the explicit scoped-transaction handle the credit
       ledger and chat persistence run inside.
Who:   Route handlers (via Depends), the ledger and orchestration services.
When:  Engine is created at module import; sessions are created per-request
       or per-transaction.

SQLite note:
    pysqlite opens transactions lazily and in DEFERRED mode. Two writers that
    both hold a SHARED lock and then try to write deadlock, and SQLite
    answers with "database is locked" instead of waiting. The engine hooks
    below take over transaction control and start every transaction with
    BEGIN IMMEDIATE, so concurrent writers wait on the busy timeout instead.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from inkwell.config import settings

# Seconds a SQLite writer waits for the database lock before failing
SQLITE_BUSY_TIMEOUT = 30


def _configure_sqlite(engine: AsyncEngine) -> None:
    """Install BEGIN IMMEDIATE transactions and foreign keys on a SQLite engine."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Disable the driver's own BEGIN handling; the "begin" hook emits it
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    PostgreSQL:  Pooled connections sized from settings, pre-ping, hourly recycle.
    SQLite:      NullPool (one connection per session) plus the transaction
                 hooks from `_configure_sqlite`.
    """
    url = make_url(database_url)
    echo = settings.log_level == "DEBUG"

    if url.get_backend_name() == "sqlite":
        engine = create_async_engine(
            database_url,
            poolclass=NullPool,
            connect_args={"timeout": SQLITE_BUSY_TIMEOUT},
            echo=echo,
        )
        _configure_sqlite(engine)
        return engine

    return create_async_engine(
        database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_recycle=3600,
        echo=echo,
    )


# ── Engine & Session Factory ──────────────────────────────────────────────
engine = build_engine(settings.database_url)

# expire_on_commit=False: ORM objects stay readable after their transaction
# ends (services return them to callers outside the session)
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models (shared metadata for Alembic)."""
    pass


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler
        3. On success: commits the transaction
        4. On error: rolls back and re-raises for the global error handler
        5. Always: closes the session (returns connection to pool)

    Example usage in a route:
        @router.get("/notes")
        async def get_notes(db: AsyncSession = Depends(get_db_session)):
            ...
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


# ── Scoped Transactions ───────────────────────────────────────────────────
@asynccontextmanager
async def transaction(
    session_factory: Optional[async_sessionmaker] = None,
) -> AsyncIterator[AsyncSession]:
    """
    Open a session and a transaction that ends with the block.

    Normal exit commits; any exception rolls back and propagates. Every
    statement issued on the yielded session belongs to the same unit, so
    a balance update and its ledger entry either both land or neither does.

    Usage:
        async with transaction() as session:
            await session.execute(update(...))
            session.add(entry)
    """
    factory = session_factory or async_session_factory
    async with factory() as session:
        async with session.begin():
            yield session


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """Close all pooled connections (application shutdown)."""
    await engine.dispose()
