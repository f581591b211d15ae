"""
Cash denomination counts.

Records how many notes or coins of each face value a cash account holds and
compares the counted total with the ledger balance. Counts never write the
balance.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select

from cashbook.app.core.exceptions import NotFoundError, ValidationError
from cashbook.app.domain.ledger.balance_adjuster import CENT, ZERO
from cashbook.app.domain.ledger.store import LedgerStore
from cashbook.app.models.cash_account import CashAccount
from cashbook.app.models.cash_denomination import CashDenomination
from cashbook.app.schemas.ledger import (
    CashCount,
    CashDenominationCreate,
    CashDenominationRead,
    CashDenominationUpdate,
)

logger = logging.getLogger("cashbook.cash_denominations")


async def _ensure_value_free(session, cash_id: int, value: Decimal, exclude_id: Optional[int] = None) -> None:
    query = select(CashDenomination.id).where(
        CashDenomination.cash_id == cash_id,
        CashDenomination.denomination_value == value,
    )
    if exclude_id is not None:
        query = query.where(CashDenomination.id != exclude_id)
    if (await session.execute(query)).first() is not None:
        raise ValidationError(
            f"Denomination {value} already exists for cash account {cash_id}",
            details={"cash_id": cash_id, "denomination_value": str(value)},
        )


async def create_denomination(store: LedgerStore, data: CashDenominationCreate) -> CashDenominationRead:
    """
    Register a face value for a cash account.

    Args:
        store: Ledger store
        data: Cash account, face value and counted quantity

    Returns:
        Created denomination

    Raises:
        NotFoundError: Unknown cash account
        ValidationError: Face value already registered for the account
    """
    async with store.unit_of_work() as session:
        await store.require(session, CashAccount, data.cash_id, "CashAccount")
        await _ensure_value_free(session, data.cash_id, data.denomination_value)
        denomination = CashDenomination(
            cash_id=data.cash_id,
            denomination_value=data.denomination_value,
            quantity=data.quantity,
        )
        session.add(denomination)
        await session.flush()
        result = CashDenominationRead.model_validate(denomination)

    logger.info(
        "Cash denomination created",
        extra={"denomination_id": result.id, "cash_id": result.cash_id, "value": str(result.denomination_value)},
    )
    return result


async def get_denomination(store: LedgerStore, denomination_id: int) -> Optional[CashDenominationRead]:
    async with store.snapshot() as session:
        denomination = await session.get(CashDenomination, denomination_id)
        return CashDenominationRead.model_validate(denomination) if denomination else None


async def list_denominations(store: LedgerStore, cash_id: Optional[int] = None) -> List[CashDenominationRead]:
    """Denominations, optionally of one cash account, highest face value first."""
    query = select(CashDenomination).order_by(CashDenomination.cash_id, CashDenomination.denomination_value.desc())
    if cash_id is not None:
        query = query.where(CashDenomination.cash_id == cash_id)

    async with store.snapshot() as session:
        result = await session.execute(query)
        return [CashDenominationRead.model_validate(d) for d in result.scalars().all()]


async def update_denomination(
    store: LedgerStore, denomination_id: int, data: CashDenominationUpdate
) -> CashDenominationRead:
    """
    Change the face value or the counted quantity of a denomination.

    Raises:
        NotFoundError: Unknown denomination
        ValidationError: New face value already registered for the account
    """
    changes = {name: getattr(data, name) for name in data.model_fields_set}

    async with store.unit_of_work() as session:
        denomination = await store.lock_entry(session, CashDenomination, denomination_id)
        if denomination is None:
            raise NotFoundError("CashDenomination", denomination_id)
        if "denomination_value" in changes:
            await _ensure_value_free(
                session, denomination.cash_id, changes["denomination_value"], exclude_id=denomination_id
            )
        for name, value in changes.items():
            setattr(denomination, name, value)
        await session.flush()
        result = CashDenominationRead.model_validate(denomination)

    logger.info("Cash denomination updated", extra={"denomination_id": denomination_id, "fields": sorted(changes)})
    return result


async def delete_denomination(store: LedgerStore, denomination_id: int) -> bool:
    """
    Remove a denomination from its cash account.

    Raises:
        NotFoundError: Unknown denomination
    """
    async with store.unit_of_work() as session:
        denomination = await store.lock_entry(session, CashDenomination, denomination_id)
        if denomination is None:
            raise NotFoundError("CashDenomination", denomination_id)
        await session.delete(denomination)

    logger.info("Cash denomination deleted", extra={"denomination_id": denomination_id})
    return True


async def count_cash(store: LedgerStore, cash_id: int) -> CashCount:
    """
    Total of the counted notes and coins of a cash account next to its stored balance.

    Both are read in the same snapshot.

    Raises:
        NotFoundError: Unknown cash account
    """
    async with store.snapshot() as session:
        account = await store.require(session, CashAccount, cash_id, "CashAccount")
        result = await session.execute(
            select(CashDenomination.denomination_value, CashDenomination.quantity)
            .where(CashDenomination.cash_id == cash_id)
        )
        counted = sum((Decimal(value) * Decimal(quantity) for value, quantity in result.all()), ZERO)
        count = CashCount(
            cash_id=cash_id,
            name=account.name,
            counted_total=counted.quantize(CENT),
            balance=Decimal(account.balance),
        )

    if count.difference != 0:
        logger.info(
            "Cash count differs from ledger balance",
            extra={"cash_id": cash_id, "counted": str(count.counted_total), "balance": str(count.balance)},
        )
    return count
