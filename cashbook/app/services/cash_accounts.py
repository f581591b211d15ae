"""
Cash account administration.

Creates and maintains cash accounts. The balance is set once, to the
opening balance, when the account is created; after that only the ledger
service writes it.
"""

import logging
from typing import List, Optional

from sqlalchemy import exists, select

from cashbook.app.core.exceptions import ConflictError, ValidationError
from cashbook.app.domain.ledger.store import LedgerStore
from cashbook.app.models.cash_account import CashAccount
from cashbook.app.models.income import IncomeEntry
from cashbook.app.models.outcome import OutcomeEntry
from cashbook.app.schemas.ledger import CashAccountCreate, CashAccountRead, CashAccountUpdate

logger = logging.getLogger("cashbook.cash_accounts")


async def _ensure_name_free(session, name: str, exclude_id: Optional[int] = None) -> None:
    query = select(CashAccount.id).where(CashAccount.name == name)
    if exclude_id is not None:
        query = query.where(CashAccount.id != exclude_id)
    if (await session.execute(query)).first() is not None:
        raise ValidationError(f"Cash account '{name}' already exists", details={"name": name})


async def create_cash_account(store: LedgerStore, data: CashAccountCreate) -> CashAccountRead:
    """
    Create a cash account whose balance starts at its opening balance.

    Args:
        store: Ledger store
        data: Name, opening balance and optional soft limit

    Returns:
        Created cash account

    Raises:
        ValidationError: Name already in use
    """
    async with store.unit_of_work() as session:
        await _ensure_name_free(session, data.name)
        account = CashAccount(
            name=data.name,
            opening_balance=data.opening_balance,
            balance=data.opening_balance,
            soft_limit=data.soft_limit,
        )
        session.add(account)
        await session.flush()
        result = CashAccountRead.model_validate(account)

    logger.info("Cash account created", extra={"cash_id": result.id, "opening_balance": str(result.opening_balance)})
    return result


async def get_cash_account(store: LedgerStore, cash_id: int) -> Optional[CashAccountRead]:
    """Fetch one cash account, or None."""
    async with store.snapshot() as session:
        account = await session.get(CashAccount, cash_id)
        return CashAccountRead.model_validate(account) if account else None


async def list_cash_accounts(store: LedgerStore) -> List[CashAccountRead]:
    """All cash accounts ordered by name."""
    async with store.snapshot() as session:
        result = await session.execute(select(CashAccount).order_by(CashAccount.name))
        return [CashAccountRead.model_validate(a) for a in result.scalars().all()]


async def update_cash_account(store: LedgerStore, cash_id: int, data: CashAccountUpdate) -> CashAccountRead:
    """
    Rename a cash account or change its soft limit.

    The account row is locked so the edit cannot race a balance update.

    Raises:
        NotFoundError: Unknown cash account
        ValidationError: New name already in use
    """
    changes = {name: getattr(data, name) for name in data.model_fields_set}

    async with store.unit_of_work() as session:
        account = (await store.lock_cash_accounts(session, [cash_id]))[cash_id]
        if "name" in changes:
            await _ensure_name_free(session, changes["name"], exclude_id=cash_id)
        for name, value in changes.items():
            setattr(account, name, value)
        await session.flush()
        result = CashAccountRead.model_validate(account)

    logger.info("Cash account updated", extra={"cash_id": cash_id, "fields": sorted(changes)})
    return result


async def delete_cash_account(store: LedgerStore, cash_id: int) -> bool:
    """
    Delete a cash account that no ledger entry references.

    Raises:
        NotFoundError: Unknown cash account
        ConflictError: Entries still reference the account
    """
    async with store.unit_of_work() as session:
        account = (await store.lock_cash_accounts(session, [cash_id]))[cash_id]
        referenced = await session.scalar(
            select(
                exists().where(IncomeEntry.cash_id == cash_id)
                | exists().where(OutcomeEntry.cash_id == cash_id)
            )
        )
        if referenced:
            raise ConflictError(
                message=f"Cash account {cash_id} still has ledger entries",
                details={"cash_id": cash_id},
            )
        await session.delete(account)

    logger.info("Cash account deleted", extra={"cash_id": cash_id})
    return True
