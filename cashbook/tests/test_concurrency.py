"""
Concurrency Tests.

Validates that concurrent units of work never lose a balance update.
"""

import asyncio
import datetime as dt
from decimal import Decimal

import pytest

from cashbook.app.models.ledger_enums import EntryKind, IncomeSource, OutcomeCategory

DAY = dt.date(2024, 1, 5)


def new_income(cash, week, amount):
    return {"cash_id": cash.id, "week_id": week.id, "date": DAY, "amount": Decimal(amount),
            "source": IncomeSource.OFFERING}


def new_outcome(cash, week, amount):
    return {"cash_id": cash.id, "week_id": week.id, "date": DAY, "amount": Decimal(amount),
            "description": "Supplies", "category": OutcomeCategory.VARIABLE}


@pytest.mark.asyncio
async def test_concurrent_creates_on_same_account(ledger, cash_a, week):
    """Two incomes of 10.00 and 15.00 racing on one account add 25.00."""
    await asyncio.gather(
        ledger.create_entry(EntryKind.INCOME, new_income(cash_a, week, "10.00")),
        ledger.create_entry(EntryKind.INCOME, new_income(cash_a, week, "15.00")),
    )

    assert await ledger.get_cash_account_balance(cash_a.id) == Decimal("125.00")


@pytest.mark.asyncio
async def test_concurrent_mixed_mutations_keep_invariant(ledger, cash_a, cash_b, week):
    seeded = [
        await ledger.create_entry(EntryKind.OUTCOME, new_outcome(cash_a, week, "10.00")),
        await ledger.create_entry(EntryKind.OUTCOME, new_outcome(cash_b, week, "20.00")),
    ]

    await asyncio.gather(
        ledger.update_entry(EntryKind.OUTCOME, seeded[0].id, {"cash_id": cash_b.id}),
        ledger.update_entry(EntryKind.OUTCOME, seeded[1].id, {"cash_id": cash_a.id}),
        ledger.create_entry(EntryKind.INCOME, new_income(cash_a, week, "1.00")),
        ledger.create_entry(EntryKind.INCOME, new_income(cash_b, week, "2.00")),
        ledger.create_entry(EntryKind.OUTCOME, new_outcome(cash_a, week, "3.00")),
    )

    assert await ledger.get_cash_account_balance(cash_a.id) == Decimal("78.00")
    assert await ledger.get_cash_account_balance(cash_b.id) == Decimal("-8.00")
    assert await ledger.reconcile_balances(repair=False) == []


@pytest.mark.asyncio
async def test_concurrent_update_and_delete_of_same_entry(ledger, cash_a, week):
    created = await ledger.create_entry(EntryKind.INCOME, new_income(cash_a, week, "50.00"))

    results = await asyncio.gather(
        ledger.update_entry(EntryKind.INCOME, created.id, {"amount": Decimal("70.00")}),
        ledger.delete_entry(EntryKind.INCOME, created.id),
        return_exceptions=True,
    )

    # Either order is valid; the balance must match whatever survived
    remaining = await ledger.get_entry(EntryKind.INCOME, created.id)
    expected = Decimal("100.00") + (remaining.amount if remaining else Decimal("0"))
    assert await ledger.get_cash_account_balance(cash_a.id) == expected
    assert await ledger.reconcile_balances(repair=False) == []
    assert sum(1 for r in results if isinstance(r, Exception)) <= 1
