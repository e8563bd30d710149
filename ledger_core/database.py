"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - Database: owns one async engine and its session factory. The application
    lifespan builds it and stores it on ``app.state``; nothing here connects
    at import time.
  - Base: Declarative base class that all ORM models inherit from
  - Money: column type storing Decimal amounts as integer cents
  - get_db(): FastAPI dependency that provides one session (one unit of work)
    per request

Session lifecycle:
  Each API request gets its own session via get_db(). The session commits on
  success and rolls back on any exception. Denied transactions are ordinary
  return values, not exceptions, so their audit rows commit like any other
  write.

SQLite note:
  pysqlite/aiosqlite open transactions lazily with a plain BEGIN, which lets
  two writers both read and then fail when upgrading to a write lock. For
  SQLite engines we take over transaction control and emit BEGIN IMMEDIATE,
  so concurrent units of work queue on the database lock instead. SAVEPOINTs
  also work correctly once the driver stops managing transactions itself.
"""

from pathlib import Path

from fastapi import Request
from sqlalchemy import BigInteger, event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from ledger_core.money import from_minor_units, to_minor_units

# Seconds a SQLite connection waits for the write lock before giving up
SQLITE_BUSY_TIMEOUT = 30


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Provides metadata tracking (used by create_all and migrations) and the
    common declarative mapping features.
    """
    pass


class Money(TypeDecorator):
    """
    Decimal amount persisted as integer cents.

    Comparisons and arithmetic against plain Decimals inside SQL expressions
    (e.g. ``Account.balance >= amount``) bind through this type too, so the
    database only ever compares integers.
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return to_minor_units(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return from_minor_units(value)


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """Make every SQLite transaction on ``engine`` start with BEGIN IMMEDIATE."""

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(
    url: str,
    *,
    echo: bool = False,
    isolation_level: str | None = None,
) -> AsyncEngine:
    """
    Create an async engine for ``url``.

    SQLite file databases get their parent directory created and immediate
    transactions enabled. Other backends honour ``isolation_level``; the
    conditional balance update is safe from READ COMMITTED upwards.
    """
    parsed = make_url(url)

    if parsed.get_backend_name() == "sqlite":
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_async_engine(
            url,
            echo=echo,
            connect_args={"timeout": SQLITE_BUSY_TIMEOUT},
        )
        _use_immediate_transactions(engine)
        return engine

    kwargs = {"echo": echo, "pool_pre_ping": True}
    if isolation_level:
        kwargs["isolation_level"] = isolation_level
    return create_async_engine(url, **kwargs)


class Database:
    """The storage handle: one engine plus the session factory bound to it."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        # expire_on_commit=False prevents lazy-load errors after commit:
        # attribute access on an expired object would need a synchronous
        # DB round-trip, which fails in async context.
        self.sessionmaker = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        echo: bool = False,
        isolation_level: str | None = None,
    ) -> "Database":
        return cls(build_engine(url, echo=echo, isolation_level=isolation_level))

    async def create_all(self) -> None:
        """Create any missing tables (development convenience)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_db(request: Request):
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...

    The session commits when the request succeeds and rolls back on any
    exception, so an unexpected failure never leaves a partial write behind.
    """
    database: Database = request.app.state.database
    async with database.sessionmaker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
