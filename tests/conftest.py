"""
Shared test fixtures.

Ledger fixtures come in two flavours that honour the same contract:
``LocalLedgerAdapter`` (in-memory, synchronous) and ``RemoteLedgerAdapter``
driven by ``FakeLedgerClient``.  The SQL ledger runs on in-memory SQLite
(via aiosqlite) so tests need neither PostgreSQL nor Redis.
"""

from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ridesync.infrastructure.database import Base
from ridesync.infrastructure.local_ledger import LocalLedger, LocalLedgerAdapter
from ridesync.infrastructure.remote_ledger import RemoteLedgerAdapter
from ridesync.infrastructure.sql_ledger import SqlLedgerClient
from tests.fakes import FakeLedgerClient

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


# ── Ledger adapters ───────────────────────────────────────────────────


@pytest.fixture
def local_ledger() -> LocalLedger:
    return LocalLedger()


@pytest.fixture
def local_adapter(local_ledger: LocalLedger) -> LocalLedgerAdapter:
    return LocalLedgerAdapter(local_ledger)


@pytest.fixture
def fake_client() -> FakeLedgerClient:
    return FakeLedgerClient()


def make_remote(client, **kwargs) -> RemoteLedgerAdapter:
    kwargs.setdefault("poll_interval", 3600)
    kwargs.setdefault("reconnect_backoff", 0.01)
    return RemoteLedgerAdapter(client, **kwargs)


@pytest_asyncio.fixture
async def remote_adapter(fake_client) -> AsyncGenerator[RemoteLedgerAdapter, None]:
    adapter = make_remote(fake_client)
    await adapter.start()
    yield adapter
    await adapter.stop()


@pytest_asyncio.fixture(params=["local", "remote"])
async def devices(request):
    """
    ``(requester_adapter, provider_adapter)`` for one shared ledger.

    Local: both parties share the same in-memory adapter.  Remote: each
    party has its own adapter watching the same fake ledger.
    """
    if request.param == "local":
        adapter = LocalLedgerAdapter()
        yield adapter, adapter
        return

    client = FakeLedgerClient()
    requester, provider = make_remote(client), make_remote(client)
    await requester.start()
    await provider.start()
    yield requester, provider
    await requester.stop()
    await provider.stop()


# ── SQL ledger (SQLite in-memory) ─────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables, yield a session factory, then drop everything."""
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def mock_redis() -> AsyncMock:
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    return redis


@pytest.fixture
def sql_client(session_factory, mock_redis) -> SqlLedgerClient:
    return SqlLedgerClient(session_factory, mock_redis, channel="test:events")
