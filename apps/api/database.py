"""
Async database engine, session factory and declarative base.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from config import settings


def enable_sqlite_write_locks(async_engine: AsyncEngine) -> AsyncEngine:
    """Open every SQLite transaction with BEGIN IMMEDIATE.

    Without it a deferred transaction that has already read cannot wait for
    the write lock and fails with "database is locked" instead of queueing
    behind the concurrent writer.
    """

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return async_engine


engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
)
if engine.dialect.name == "sqlite":
    enable_sqlite_write_locks(engine)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """FastAPI dependency yielding one session per request."""
    async with async_session_maker() as session:
        yield session
