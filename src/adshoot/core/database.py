"""Database session factory setup."""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


def create_engine(db_url: str, pool_size: int = 20) -> AsyncEngine:
    """Create async database engine.

    PostgreSQL (postgresql+psycopg://...) is used in production. SQLite
    (sqlite+aiosqlite://...) is supported for local development and tests;
    for SQLite the driver's implicit transaction handling is disabled so that
    SAVEPOINTs used by the photoshoot synchronizer behave like on PostgreSQL,
    and every transaction takes the write lock up front (BEGIN IMMEDIATE) so
    concurrent read-then-write transactions queue on the busy timeout instead
    of failing with "database is locked".

    Args:
        db_url: Database connection URL
        pool_size: Maximum number of connections in the pool (ignored for SQLite)

    Returns:
        Configured AsyncEngine
    """
    if db_url.startswith("sqlite"):
        engine = create_async_engine(
            db_url,
            connect_args={"timeout": 30},
            echo=False,
        )

        @event.listens_for(engine.sync_engine, "connect")
        def _disable_implicit_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    return create_async_engine(
        db_url,
        pool_size=pool_size,
        max_overflow=0,  # No overflow beyond pool_size
        pool_pre_ping=True,  # Verify connections before using
        echo=False,  # Don't log SQL queries (use structlog instead)
    )


def setup_db_session(db_url: str, pool_size: int = 20) -> async_sessionmaker[AsyncSession]:
    """Create async database session factory.

    Args:
        db_url: Database connection URL
        pool_size: Maximum number of connections in the pool (default: 20)

    Returns:
        Async session factory for creating database sessions
    """
    engine = create_engine(db_url, pool_size=pool_size)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy loading issues after commit
    )

    return session_factory
