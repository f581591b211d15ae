"""
Database session configuration.

This module handles engine creation and session management using SQLAlchemy
with async support: asyncpg/PostgreSQL in production, aiosqlite in tests.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from cashbook.app.core.config import settings


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction take the database write lock up front.

    SQLite has no row locks; BEGIN IMMEDIATE serializes writers so that two
    units of work can never both read a stale balance. The driver's own
    implicit BEGIN is disabled so ours is the only one emitted.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_for(
    database_url: str,
    echo: bool = False,
    lock_timeout_seconds: float = settings.lock_timeout_seconds,
) -> AsyncEngine:
    """
    Create an async engine configured for ledger units of work.

    Args:
        database_url: SQLAlchemy async URL
        echo: Log SQL statements
        lock_timeout_seconds: SQLite busy timeout (PostgreSQL applies it per transaction)

    Returns:
        Configured AsyncEngine
    """
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": lock_timeout_seconds},
        )
        _use_immediate_transactions(engine)
        return engine

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory used by every unit of work."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Create async engine
engine = create_engine_for(settings.database_url, echo=settings.db_echo)

# Create declarative base for models
Base = declarative_base()
