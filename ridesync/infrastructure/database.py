"""
Async SQLAlchemy engine and session factory for the SQL-backed ledger.

Uses ``asyncpg`` as the PostgreSQL driver for non-blocking I/O.  The
engine is built on demand so importing the models never opens a pool.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


def create_session_factory(
    database_url: str, **engine_kwargs
) -> async_sessionmaker[AsyncSession]:
    if database_url.startswith("postgresql"):
        engine_kwargs.setdefault("pool_size", 20)
        engine_kwargs.setdefault("max_overflow", 10)
    engine = create_async_engine(database_url, echo=False, **engine_kwargs)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
