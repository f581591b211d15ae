"""
Centralized Test Configuration.

Every test gets its own SQLite file database so concurrent units of work
contend for the real write lock.
"""

import datetime as dt
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport

from cashbook.app.main import app
from cashbook.app.db.session import Base, create_engine_for
from cashbook.app.domain.ledger.ledger_service import LedgerService
from cashbook.app.domain.ledger.store import LedgerStore
from cashbook.app.schemas.ledger import CashAccountCreate, PersonCreate, WeekCreate
from cashbook.app.services.cash_accounts import create_cash_account
from cashbook.app.services.references import create_person, create_week


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
async def engine(database_url):
    """Create tables before each test function and dispose after."""
    engine = create_engine_for(database_url, lock_timeout_seconds=5.0)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def store(engine):
    return LedgerStore(engine, lock_timeout_seconds=5.0)


@pytest.fixture
def ledger(store):
    return LedgerService(store)


@pytest.fixture
async def week(store):
    return await create_week(store, WeekCreate(week_start=dt.date(2024, 1, 1), week_end=dt.date(2024, 1, 7)))


@pytest.fixture
async def person(store):
    return await create_person(store, PersonCreate(dni="30111222", first_name="Ana", last_name="Pérez"))


@pytest.fixture
async def cash_a(store):
    return await create_cash_account(store, CashAccountCreate(name="Caja A", opening_balance=Decimal("100.00")))


@pytest.fixture
async def cash_b(store):
    return await create_cash_account(store, CashAccountCreate(name="Caja B"))


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
