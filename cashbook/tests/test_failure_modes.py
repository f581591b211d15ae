"""
Failure Injection Tests.

Validates that a unit of work never leaves an entry without its balance
change (or the reverse) and that store errors surface as ledger errors.
"""

import datetime as dt
from decimal import Decimal

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError, DisconnectionError, OperationalError
from sqlalchemy.ext.asyncio import create_async_engine

from cashbook.app.core.exceptions import ConflictError, LockTimeoutError, StoreError
from cashbook.app.db.session import create_engine_for
from cashbook.app.domain.ledger.ledger_service import LedgerService
from cashbook.app.domain.ledger.store import LedgerStore, translate_store_error
from cashbook.app.models.cash_account import CashAccount
from cashbook.app.models.ledger_enums import EntryKind, IncomeSource

DAY = dt.date(2024, 1, 2)


class FakeDriverError(Exception):
    def __init__(self, message, sqlstate=None):
        super().__init__(message)
        self.sqlstate = sqlstate


def driver_error(message, sqlstate=None):
    return DBAPIError("SELECT 1", {}, FakeDriverError(message, sqlstate))


def new_income(cash, week, amount="10.00"):
    return {"cash_id": cash.id, "week_id": week.id, "date": DAY, "amount": Decimal(amount),
            "source": IncomeSource.OFFERING}


@pytest.mark.asyncio
async def test_failure_after_entry_write_rolls_back_create(ledger, cash_a, week, mocker):
    """The entry is flushed but the balance step fails: nothing persists."""
    mocker.patch(
        "cashbook.app.domain.ledger.ledger_service.creation_delta",
        side_effect=RuntimeError("Injected failure"),
    )

    with pytest.raises(RuntimeError):
        await ledger.create_entry(EntryKind.INCOME, new_income(cash_a, week))

    assert await ledger.list_entries(EntryKind.INCOME) == []
    assert await ledger.get_cash_account_balance(cash_a.id) == Decimal("100.00")


@pytest.mark.asyncio
async def test_failure_after_balance_write_rolls_back_update(ledger, cash_a, cash_b, week, mocker):
    created = await ledger.create_entry(EntryKind.INCOME, new_income(cash_a, week, "40.00"))
    mocker.patch(
        "cashbook.app.domain.ledger.ledger_service._to_read",
        side_effect=RuntimeError("Injected failure"),
    )

    with pytest.raises(RuntimeError):
        await ledger.update_entry(EntryKind.INCOME, created.id, {"cash_id": cash_b.id})

    mocker.stopall()
    stored = await ledger.get_entry(EntryKind.INCOME, created.id)
    assert stored.cash_id == cash_a.id
    assert await ledger.get_cash_account_balance(cash_a.id) == Decimal("140.00")
    assert await ledger.get_cash_account_balance(cash_b.id) == Decimal("0.00")


@pytest.mark.asyncio
async def test_failure_during_delete_keeps_entry(ledger, cash_a, week, mocker):
    created = await ledger.create_entry(EntryKind.INCOME, new_income(cash_a, week, "40.00"))
    mocker.patch(
        "cashbook.app.domain.ledger.ledger_service.LedgerService._apply",
        side_effect=RuntimeError("Injected failure"),
    )

    with pytest.raises(RuntimeError):
        await ledger.delete_entry(EntryKind.INCOME, created.id)

    assert await ledger.get_entry(EntryKind.INCOME, created.id) is not None
    assert await ledger.get_cash_account_balance(cash_a.id) == Decimal("140.00")


@pytest.mark.asyncio
async def test_lock_timeout_surfaces_and_rolls_back(store, database_url, cash_a, week):
    """A writer that cannot get the lock in time fails with LockTimeoutError."""
    impatient_engine = create_engine_for(database_url, lock_timeout_seconds=0.2)
    impatient = LedgerService(LedgerStore(impatient_engine, lock_timeout_seconds=0.2))

    try:
        async with store.unit_of_work() as session:
            await session.execute(select(CashAccount.id))

            with pytest.raises(LockTimeoutError) as exc:
                await impatient.create_entry(EntryKind.INCOME, new_income(cash_a, week))

        assert isinstance(exc.value, ConflictError)
        assert exc.value.status_code == 503
        assert await impatient.list_entries(EntryKind.INCOME) == []
        assert await impatient.get_cash_account_balance(cash_a.id) == Decimal("100.00")
    finally:
        await impatient_engine.dispose()


@pytest.mark.asyncio
async def test_unreachable_store_surfaces_store_error(store, mocker):
    mocker.patch.object(store, "_apply_lock_timeout", side_effect=OSError("Connection refused"))

    with pytest.raises(StoreError) as exc:
        async with store.unit_of_work():
            pass

    assert exc.value.error_code == "ERR_STORE_001"


@pytest.mark.asyncio
async def test_driver_error_inside_unit_of_work_is_translated(store):
    with pytest.raises(ConflictError):
        async with store.unit_of_work():
            raise driver_error("deadlock detected", "40P01")


def test_translate_lock_timeouts():
    assert isinstance(translate_store_error(driver_error("canceling statement", "55P03")), LockTimeoutError)
    sqlite_locked = OperationalError("BEGIN IMMEDIATE", {}, FakeDriverError("database is locked"))
    assert isinstance(translate_store_error(sqlite_locked), LockTimeoutError)


def test_translate_conflicts():
    for code in ("40P01", "40001", "23505", "23503"):
        translated = translate_store_error(driver_error("boom", code))
        assert type(translated) is ConflictError
        assert translated.error_code == "ERR_CONFLICT_001"

    assert type(translate_store_error(driver_error("FOREIGN KEY constraint failed"))) is ConflictError


def test_translate_everything_else_to_store_error():
    translated = translate_store_error(driver_error("server closed the connection unexpectedly", "08006"))

    assert isinstance(translated, StoreError)
    assert translated.details == {"error": "FakeDriverError"}


@pytest.mark.asyncio
async def test_exhausted_pool_surfaces_lock_timeout(database_url):
    """Waiting too long for a pooled connection is a retryable lock timeout."""
    small_engine = create_async_engine(database_url, pool_size=1, max_overflow=0, pool_timeout=0.2)
    small_store = LedgerStore(small_engine, lock_timeout_seconds=0.2)

    try:
        async with small_store.unit_of_work() as session:
            await session.execute(text("SELECT 1"))

            with pytest.raises(LockTimeoutError) as exc:
                async with small_store.unit_of_work() as waiting:
                    await waiting.execute(text("SELECT 1"))

        assert exc.value.status_code == 503
        assert exc.value.details == {"error": "pool_timeout"}
    finally:
        await small_engine.dispose()


@pytest.mark.asyncio
async def test_engine_error_without_driver_error_surfaces_store_error(store, mocker):
    mocker.patch.object(store, "_apply_lock_timeout", side_effect=DisconnectionError("Pool invalidated"))

    with pytest.raises(StoreError) as exc:
        async with store.unit_of_work():
            pass

    assert exc.value.details == {"error": "DisconnectionError"}


@pytest.mark.asyncio
async def test_postgres_unit_of_work_sets_lock_timeout(mocker):
    engine = mocker.MagicMock()
    engine.dialect.name = "postgresql"
    pg_store = LedgerStore(engine, lock_timeout_seconds=0.2)

    session = mocker.MagicMock()
    session.execute = mocker.AsyncMock()
    session.close = mocker.AsyncMock()
    pg_store._session_factory = mocker.MagicMock(return_value=session)

    async with pg_store.unit_of_work() as active:
        assert active is session

    statement = session.execute.await_args.args[0]
    assert str(statement) == "SET LOCAL lock_timeout = '200ms'"
    session.close.assert_awaited_once()

