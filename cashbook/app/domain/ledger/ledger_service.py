"""
Ledger Service (Domain Logic).

Creates, updates and deletes incomes and outcomes together with the balance
of the cash account(s) they affect. Each mutation is one unit of work:

1. Validate the typed input (nothing touched on failure)
2. Lock the affected rows (entry FOR UPDATE, cash accounts FOR UPDATE in id order)
3. Verify every referenced id resolves
4. Write the entry
5. Apply the deltas computed by the Balance Adjuster
6. Commit, or roll back everything

Balance math lives only in the Balance Adjuster; this module decides which
deltas apply and where.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cashbook.app.core.exceptions import NotFoundError, ValidationError
from cashbook.app.domain.ledger.balance_adjuster import (
    ZERO,
    BalanceDelta,
    apply_delta,
    creation_delta,
    derive_balance,
    deletion_delta,
    merge_deltas,
    update_deltas,
)
from cashbook.app.domain.ledger.store import LedgerStore
from cashbook.app.models.cash_account import CashAccount
from cashbook.app.models.income import IncomeEntry
from cashbook.app.models.ledger_enums import EntryKind, IncomeSource
from cashbook.app.models.outcome import OutcomeEntry
from cashbook.app.models.person import Person
from cashbook.app.models.week import Week
from cashbook.app.schemas.ledger import (
    BalanceDrift,
    EntryFilter,
    IncomeCreate,
    IncomeRead,
    IncomeUpdate,
    OutcomeCreate,
    OutcomeRead,
    OutcomeUpdate,
)

logger = logging.getLogger("cashbook.ledger")

EntryRead = Union[IncomeRead, OutcomeRead]
EntryInput = Union[BaseModel, Mapping[str, Any]]

ENTRY_MODELS = {EntryKind.INCOME: IncomeEntry, EntryKind.OUTCOME: OutcomeEntry}
CREATE_SCHEMAS = {EntryKind.INCOME: IncomeCreate, EntryKind.OUTCOME: OutcomeCreate}
UPDATE_SCHEMAS = {EntryKind.INCOME: IncomeUpdate, EntryKind.OUTCOME: OutcomeUpdate}
READ_SCHEMAS = {EntryKind.INCOME: IncomeRead, EntryKind.OUTCOME: OutcomeRead}
RESOURCE_NAMES = {EntryKind.INCOME: "Income", EntryKind.OUTCOME: "Outcome"}


def _parse(schema, data: EntryInput, index: Optional[int] = None):
    """Validate caller input against a schema, raising the ledger ValidationError."""
    if isinstance(data, schema):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return schema.model_validate(data)
    except SchemaError as exc:
        details: Dict[str, Any] = {
            "errors": [
                {"loc": [str(part) for part in err["loc"]], "msg": err["msg"], "type": err["type"]}
                for err in exc.errors()
            ]
        }
        if index is not None:
            details["index"] = index
        raise ValidationError(f"Invalid {schema.__name__} data", details=details) from exc


def _kind(kind) -> EntryKind:
    try:
        return EntryKind(kind)
    except ValueError as exc:
        raise ValidationError(f"Unknown entry kind: {kind!r}", details={"kind": str(kind)}) from exc


def _to_read(kind: EntryKind, entry, cash_name: str) -> EntryRead:
    """Build the read model of an entry together with its cash account name."""
    data = {
        "id": entry.id,
        "cash_id": entry.cash_id,
        "cash_name": cash_name,
        "week_id": entry.week_id,
        "date": entry.date,
        "amount": entry.amount,
    }
    if kind is EntryKind.INCOME:
        data.update(person_id=entry.person_id, source=entry.source)
    else:
        data.update(description=entry.description, category=entry.category)
    return READ_SCHEMAS[kind].model_validate(data)


class LedgerService:
    """
    Entry point for every ledger mutation and query.

    Holds no state between calls besides the store; balances are read from
    the database every time.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    # Mutations

    async def create_entry(self, kind: EntryKind, data: EntryInput) -> EntryRead:
        """
        Record a new income or outcome and credit/debit its cash account.

        Args:
            kind: EntryKind.INCOME or EntryKind.OUTCOME
            data: IncomeCreate/OutcomeCreate or an equivalent mapping

        Returns:
            The created entry with its id and cash account name

        Raises:
            ValidationError: Input rejected before any store access
            NotFoundError: cash_id, week_id or person_id does not resolve
        """
        kind = _kind(kind)
        payload = _parse(CREATE_SCHEMAS[kind], data)

        async with self.store.unit_of_work() as session:
            accounts = await self.store.lock_cash_accounts(session, [payload.cash_id])
            await self._check_references(session, payload.week_id, getattr(payload, "person_id", None))

            entry = ENTRY_MODELS[kind](**payload.model_dump())
            session.add(entry)
            await session.flush()

            delta = creation_delta(kind, entry.cash_id, payload.amount)
            self._apply(accounts, [delta])
            await session.flush()

            result = _to_read(kind, entry, accounts[entry.cash_id].name)

        logger.info(
            "Ledger entry created",
            extra={"kind": kind.value, "entry_id": result.id, "cash_id": result.cash_id, "delta": str(delta.delta)},
        )
        return result

    async def create_entries_bulk(
        self, kind: EntryKind, week_id: int, items: Iterable[EntryInput]
    ) -> List[EntryRead]:
        """
        Record several entries of one week in a single unit of work.

        Every entry and every balance change commits together or not at all.
        Items may omit week_id; an item carrying a different week is rejected.

        Raises:
            ValidationError: Empty batch or any invalid item (with its index)
            NotFoundError: Any referenced id does not resolve
        """
        kind = _kind(kind)
        schema = CREATE_SCHEMAS[kind]
        payloads = []
        for index, item in enumerate(items):
            raw = dict(item.model_dump(exclude_unset=True) if isinstance(item, BaseModel) else item)
            if raw.get("week_id") not in (None, week_id):
                raise ValidationError(
                    "Bulk item belongs to a different week",
                    details={"index": index, "week_id": raw.get("week_id"), "expected": week_id},
                )
            raw["week_id"] = week_id
            payloads.append(_parse(schema, raw, index=index))

        if not payloads:
            raise ValidationError("At least one entry is required")

        async with self.store.unit_of_work() as session:
            accounts = await self.store.lock_cash_accounts(session, [p.cash_id for p in payloads])
            await self._require(session, Week, week_id, "Week")
            person_ids = {getattr(p, "person_id", None) for p in payloads} - {None}
            for person_id in sorted(person_ids):
                await self._require(session, Person, person_id, "Person")

            entries = [ENTRY_MODELS[kind](**p.model_dump()) for p in payloads]
            session.add_all(entries)
            await session.flush()

            deltas = merge_deltas([creation_delta(kind, e.cash_id, p.amount) for e, p in zip(entries, payloads)])
            self._apply(accounts, deltas)
            await session.flush()

            results = [_to_read(kind, e, accounts[e.cash_id].name) for e in entries]

        logger.info(
            "Ledger entries created in bulk",
            extra={"kind": kind.value, "count": len(results), "week_id": week_id,
                   "deltas": {d.cash_id: str(d.delta) for d in deltas}},
        )
        return results

    async def update_entry(self, kind: EntryKind, entry_id: int, changes: EntryInput) -> EntryRead:
        """
        Apply a partial update to an entry, rebalancing the affected cash accounts.

        Changing the amount adjusts the owning account by the difference.
        Changing cash_id moves the movement: the old account loses the old
        amount and the new account gains the new amount.

        Raises:
            ValidationError: Empty or invalid changes, tithe left without a person
            NotFoundError: Entry or a newly referenced id does not resolve
        """
        kind = _kind(kind)
        payload = _parse(UPDATE_SCHEMAS[kind], changes)
        fields = payload.changes()

        async with self.store.unit_of_work() as session:
            entry = await self.store.lock_entry(session, ENTRY_MODELS[kind], entry_id)
            if entry is None:
                raise NotFoundError(RESOURCE_NAMES[kind], entry_id)

            old_cash_id, old_amount = entry.cash_id, Decimal(entry.amount)
            new_cash_id = fields.get("cash_id", old_cash_id)
            new_amount = fields.get("amount", old_amount)

            deltas: List[BalanceDelta] = []
            if new_cash_id != old_cash_id or new_amount != old_amount:
                accounts = await self.store.lock_cash_accounts(session, [old_cash_id, new_cash_id])
                deltas = update_deltas(kind, old_cash_id, old_amount, new_cash_id, new_amount)
            else:
                accounts = {old_cash_id: await self._require(session, CashAccount, old_cash_id, "CashAccount")}

            await self._check_references(session, fields.get("week_id"), fields.get("person_id"))

            for name, value in fields.items():
                setattr(entry, name, value)

            if kind is EntryKind.INCOME and entry.source is IncomeSource.TITHE and entry.person_id is None:
                raise ValidationError(
                    "A tithe must be associated with a person",
                    details={"entry_id": entry_id},
                )

            self._apply(accounts, deltas)
            await session.flush()

            result = _to_read(kind, entry, accounts[entry.cash_id].name)

        logger.info(
            "Ledger entry updated",
            extra={"kind": kind.value, "entry_id": entry_id, "fields": sorted(fields),
                   "deltas": {d.cash_id: str(d.delta) for d in deltas}},
        )
        return result

    async def delete_entry(self, kind: EntryKind, entry_id: int) -> bool:
        """
        Delete an entry and reverse its effect on its cash account.

        Returns:
            True once the deletion is committed

        Raises:
            NotFoundError: The entry does not exist (including already deleted)
        """
        kind = _kind(kind)

        async with self.store.unit_of_work() as session:
            entry = await self.store.lock_entry(session, ENTRY_MODELS[kind], entry_id)
            if entry is None:
                raise NotFoundError(RESOURCE_NAMES[kind], entry_id)

            accounts = await self.store.lock_cash_accounts(session, [entry.cash_id])
            delta = deletion_delta(kind, entry.cash_id, Decimal(entry.amount))

            await session.delete(entry)
            self._apply(accounts, [delta])
            await session.flush()

        logger.info(
            "Ledger entry deleted",
            extra={"kind": kind.value, "entry_id": entry_id, "cash_id": delta.cash_id, "delta": str(delta.delta)},
        )
        return True

    async def reconcile_balances(self, repair: bool = True) -> List[BalanceDrift]:
        """
        Compare every stored balance with the one derived from the ledger history.

        All cash accounts are locked for the duration, so no entry mutation can
        interleave with the comparison.

        Args:
            repair: Overwrite drifted balances with the derived value

        Returns:
            One BalanceDrift per account whose stored balance differs
        """
        async with self.store.unit_of_work() as session:
            ids = (await session.execute(select(CashAccount.id).order_by(CashAccount.id))).scalars().all()
            accounts = await self.store.lock_cash_accounts(session, ids)
            income_totals = await self._totals_by_cash(session, IncomeEntry)
            outcome_totals = await self._totals_by_cash(session, OutcomeEntry)

            drifts = []
            for cash_id, account in accounts.items():
                derived = derive_balance(
                    account.opening_balance,
                    income_totals.get(cash_id, ZERO),
                    outcome_totals.get(cash_id, ZERO),
                )
                stored = Decimal(account.balance)
                if stored == derived:
                    continue
                if repair:
                    account.balance = derived
                drifts.append(BalanceDrift(
                    cash_id=cash_id,
                    name=account.name,
                    stored_balance=stored,
                    derived_balance=derived,
                    repaired=repair,
                ))
            await session.flush()

        for drift in drifts:
            logger.warning(
                "Cash account balance drift",
                extra={"cash_id": drift.cash_id, "stored": str(drift.stored_balance),
                       "derived": str(drift.derived_balance), "repaired": drift.repaired},
            )
        return drifts

    # Queries

    async def get_entry(self, kind: EntryKind, entry_id: int) -> Optional[EntryRead]:
        """Fetch one entry with its cash account name, or None."""
        kind = _kind(kind)
        model = ENTRY_MODELS[kind]

        async with self.store.snapshot() as session:
            result = await session.execute(
                select(model, CashAccount.name)
                .join(CashAccount, model.cash_id == CashAccount.id)
                .where(model.id == entry_id)
            )
            row = result.one_or_none()

        if row is None:
            return None
        return _to_read(kind, row[0], row[1])

    async def list_entries(self, kind: EntryKind, filters: Optional[EntryFilter] = None) -> List[EntryRead]:
        """
        List entries matching the filter, ordered by date then id.

        Each row carries the owning cash account name, read in the same
        statement as the entry.
        """
        kind = _kind(kind)
        model = ENTRY_MODELS[kind]
        filters = _parse(EntryFilter, filters or {})

        query = select(model, CashAccount.name).join(CashAccount, model.cash_id == CashAccount.id)
        if filters.cash_id is not None:
            query = query.where(model.cash_id == filters.cash_id)
        if filters.week_id is not None:
            query = query.where(model.week_id == filters.week_id)
        if filters.date is not None:
            query = query.where(model.date == filters.date)
        if filters.date_from is not None:
            query = query.where(model.date >= filters.date_from)
        if filters.date_to is not None:
            query = query.where(model.date <= filters.date_to)
        if kind is EntryKind.INCOME:
            if filters.person_id is not None:
                query = query.where(model.person_id == filters.person_id)
            if filters.source is not None:
                query = query.where(model.source == filters.source)
        elif filters.category is not None:
            query = query.where(model.category == filters.category)

        async with self.store.snapshot() as session:
            result = await session.execute(query.order_by(model.date, model.id))
            rows = result.all()

        return [_to_read(kind, entry, cash_name) for entry, cash_name in rows]

    async def get_tithes_by_dni(self, dni: str) -> List[IncomeRead]:
        """Tithe incomes of the person with this DNI; empty when the person is unknown."""
        dni = (dni or "").strip()
        if not dni:
            raise ValidationError("DNI must not be empty")

        async with self.store.snapshot() as session:
            result = await session.execute(
                select(IncomeEntry, CashAccount.name)
                .join(CashAccount, IncomeEntry.cash_id == CashAccount.id)
                .join(Person, IncomeEntry.person_id == Person.id)
                .where(Person.dni == dni, IncomeEntry.source == IncomeSource.TITHE)
                .order_by(IncomeEntry.date, IncomeEntry.id)
            )
            rows = result.all()

        return [_to_read(EntryKind.INCOME, entry, cash_name) for entry, cash_name in rows]

    async def get_cash_account_balance(self, cash_id: int) -> Decimal:
        """
        Current stored balance of a cash account, read from the store.

        Raises:
            NotFoundError: Unknown cash account
        """
        async with self.store.snapshot() as session:
            result = await session.execute(select(CashAccount.balance).where(CashAccount.id == cash_id))
            balance = result.scalar_one_or_none()

        if balance is None:
            raise NotFoundError("CashAccount", cash_id)
        return Decimal(balance)

    # Helpers

    @staticmethod
    def _apply(accounts: Dict[int, CashAccount], deltas: Iterable[BalanceDelta]) -> None:
        for delta in deltas:
            account = accounts[delta.cash_id]
            account.balance = apply_delta(account.balance, delta)

    @staticmethod
    async def _totals_by_cash(session: AsyncSession, model) -> Dict[int, Decimal]:
        result = await session.execute(
            select(model.cash_id, func.sum(model.amount)).group_by(model.cash_id)
        )
        return {cash_id: Decimal(total) for cash_id, total in result.all()}

    async def _check_references(self, session: AsyncSession, week_id: Optional[int], person_id: Optional[int]) -> None:
        if week_id is not None:
            await self._require(session, Week, week_id, "Week")
        if person_id is not None:
            await self._require(session, Person, person_id, "Person")

    async def _require(self, session: AsyncSession, model, row_id: int, resource: str):
        return await self.store.require(session, model, row_id, resource)
