"""
Database engine and session management with SQLAlchemy async
"""

from typing import AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)

# Seconds a SQLite connection waits for another writer before giving up
SQLITE_BUSY_TIMEOUT = 30.0

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker] = None


def create_engine(database_url: Optional[str] = None, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite connections are switched to explicit BEGIN IMMEDIATE so that DDL
    (CREATE, ALTER ... RENAME, DROP) participates in transactions the same
    way it does on PostgreSQL. The staging swap relies on that. Taking the
    write lock up front lets concurrent datasets wait on the busy timeout
    instead of failing with "database is locked" when a deferred
    transaction tries to upgrade.
    """
    url = database_url or settings.DATABASE_URL
    connect_args = {}
    if make_url(url).get_backend_name() == "sqlite":
        connect_args["timeout"] = SQLITE_BUSY_TIMEOUT

    engine = create_async_engine(
        url,
        echo=echo,
        poolclass=NullPool,
        connect_args=connect_args,
        future=True
    )

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine.sync_engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


def get_engine() -> AsyncEngine:
    """Process-wide engine built from settings on first use"""
    global _engine, _session_maker
    if _engine is None:
        _engine = create_engine(echo=settings.ENVIRONMENT == "development" and settings.LOG_LEVEL == "DEBUG")
        _session_maker = create_session_maker(_engine)
    return _engine


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session"""
    get_engine()
    async with _session_maker() as session:
        yield session


async def dispose_engine():
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_maker = None
