"""
Cash Denomination Tests.

Counted notes and coins per cash account, compared with the ledger balance.
"""

import datetime as dt
from decimal import Decimal

import pytest
from pydantic import ValidationError as SchemaError

from cashbook.app.core.exceptions import NotFoundError, ValidationError
from cashbook.app.models.ledger_enums import EntryKind, IncomeSource
from cashbook.app.schemas.ledger import CashDenominationCreate, CashDenominationUpdate
from cashbook.app.services.cash_accounts import delete_cash_account
from cashbook.app.services.cash_denominations import (
    count_cash,
    create_denomination,
    delete_denomination,
    get_denomination,
    list_denominations,
    update_denomination,
)


async def add(store, cash, value, quantity):
    return await create_denomination(
        store, CashDenominationCreate(cash_id=cash.id, denomination_value=Decimal(value), quantity=Decimal(quantity))
    )


@pytest.mark.asyncio
async def test_count_matches_balance(store, cash_a):
    await add(store, cash_a, "20.00", "4")
    await add(store, cash_a, "0.50", "30")
    await add(store, cash_a, "5", "1")

    listed = await list_denominations(store, cash_id=cash_a.id)
    count = await count_cash(store, cash_a.id)

    assert [d.denomination_value for d in listed] == [Decimal("20.00"), Decimal("5.00"), Decimal("0.50")]
    assert listed[0].subtotal == Decimal("80.00")
    assert count.counted_total == Decimal("100.00")
    assert count.balance == Decimal("100.00")
    assert count.difference == 0


@pytest.mark.asyncio
async def test_count_shows_ledger_difference(store, ledger, cash_a, week):
    await add(store, cash_a, "50.00", "2")
    await ledger.create_entry(EntryKind.INCOME, {
        "cash_id": cash_a.id, "week_id": week.id, "date": dt.date(2024, 1, 2),
        "amount": Decimal("12.00"), "source": IncomeSource.OFFERING,
    })

    count = await count_cash(store, cash_a.id)

    assert count.counted_total == Decimal("100.00")
    assert count.balance == Decimal("112.00")
    assert count.difference == Decimal("-12.00")
    # Counting never touches the ledger balance
    assert await ledger.get_cash_account_balance(cash_a.id) == Decimal("112.00")


@pytest.mark.asyncio
async def test_value_is_unique_per_account(store, cash_a, cash_b):
    await add(store, cash_a, "10.00", "1")

    with pytest.raises(ValidationError):
        await add(store, cash_a, "10", "3")

    other = await add(store, cash_b, "10.00", "3")
    assert other.cash_id == cash_b.id
    assert len(await list_denominations(store)) == 2


@pytest.mark.asyncio
async def test_unknown_cash_account(store):
    with pytest.raises(NotFoundError):
        await create_denomination(store, CashDenominationCreate(cash_id=999, denomination_value=Decimal("1.00")))
    with pytest.raises(NotFoundError):
        await count_cash(store, 999)


@pytest.mark.asyncio
async def test_update_and_delete(store, cash_a):
    twenty = await add(store, cash_a, "20.00", "1")
    ten = await add(store, cash_a, "10.00", "1")

    updated = await update_denomination(store, twenty.id, CashDenominationUpdate(quantity=Decimal("7")))
    assert updated.quantity == Decimal("7.00")
    assert (await get_denomination(store, twenty.id)).quantity == Decimal("7.00")

    with pytest.raises(ValidationError):
        await update_denomination(store, ten.id, CashDenominationUpdate(denomination_value=Decimal("20.00")))
    with pytest.raises(NotFoundError):
        await update_denomination(store, 999, CashDenominationUpdate(quantity=Decimal("1")))

    assert await delete_denomination(store, ten.id) is True
    assert await get_denomination(store, ten.id) is None
    with pytest.raises(NotFoundError):
        await delete_denomination(store, ten.id)


@pytest.mark.asyncio
async def test_deleting_cash_account_removes_its_denominations(store, cash_a, cash_b):
    await add(store, cash_b, "1.00", "3")
    await add(store, cash_a, "1.00", "3")

    await delete_cash_account(store, cash_b.id)

    remaining = await list_denominations(store)
    assert [d.cash_id for d in remaining] == [cash_a.id]


def test_denomination_input_rules():
    with pytest.raises(SchemaError):
        CashDenominationCreate(cash_id=1, denomination_value=Decimal("0"))
    with pytest.raises(SchemaError):
        CashDenominationCreate(cash_id=1, denomination_value=Decimal("1.00"), quantity=Decimal("-1"))
    with pytest.raises(SchemaError):
        CashDenominationCreate(cash_id=1, denomination_value=2.5)
    with pytest.raises(SchemaError):
        CashDenominationUpdate()
    with pytest.raises(SchemaError):
        CashDenominationUpdate(quantity=None)
