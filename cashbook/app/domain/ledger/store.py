"""
Ledger Store.

Transactional access to cash accounts and ledger entries. Every mutation of
the ledger runs inside ``unit_of_work()``: one database transaction that
commits on success and rolls back on any exception. Driver errors are
translated into the ledger error taxonomy at this boundary.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Dict, Optional, Type

from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from cashbook.app.core.config import settings
from cashbook.app.core.exceptions import (
    ConflictError,
    LockTimeoutError,
    NotFoundError,
    StoreError,
)
from cashbook.app.db.session import create_session_factory
from cashbook.app.models.cash_account import CashAccount

logger = logging.getLogger("cashbook.ledger.store")

# PostgreSQL SQLSTATE codes
LOCK_NOT_AVAILABLE = "55P03"
DEADLOCK_DETECTED = "40P01"
SERIALIZATION_FAILURE = "40001"
INTEGRITY_CLASS = "23"


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def translate_store_error(exc: DBAPIError) -> Exception:
    """
    Map a driver error onto the ledger error taxonomy.

    Args:
        exc: Error raised by SQLAlchemy inside a unit of work

    Returns:
        LockTimeoutError, ConflictError or StoreError
    """
    code = _sqlstate(exc)
    message = str(getattr(exc, "orig", exc)).lower()

    if code == LOCK_NOT_AVAILABLE or "database is locked" in message or "lock timeout" in message:
        return LockTimeoutError(details={"sqlstate": code})
    if code in (DEADLOCK_DETECTED, SERIALIZATION_FAILURE) or "deadlock" in message:
        return ConflictError(details={"sqlstate": code})
    if (code or "").startswith(INTEGRITY_CLASS) or "constraint" in message:
        return ConflictError(
            message="Ledger constraint violated by a concurrent change",
            details={"sqlstate": code},
        )
    return StoreError(details={"error": type(exc.orig).__name__ if exc.orig is not None else type(exc).__name__})


class LedgerStore:
    """
    Owns the session factory and the transaction discipline of the ledger.

    Args:
        engine: Async engine bound to the ledger database
        lock_timeout_seconds: Maximum wait for row locks (PostgreSQL)
    """

    def __init__(self, engine: AsyncEngine, lock_timeout_seconds: float = settings.lock_timeout_seconds):
        self.engine = engine
        self.lock_timeout_seconds = lock_timeout_seconds
        self._session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[AsyncSession]:
        """
        Open one atomic unit of work.

        Commits when the block exits normally; rolls back on any exception.
        Nothing staged in the session survives a rollback.

        Raises:
            LockTimeoutError: A lock or pooled connection could not be acquired in time
            ConflictError: Deadlock, serialization or integrity race
            StoreError: Connectivity or transaction infrastructure failure,
                including engine errors that carry no driver error
        """
        session = self._session_factory()
        try:
            async with session.begin():
                await self._apply_lock_timeout(session)
                yield session
        except DBAPIError as exc:
            translated = translate_store_error(exc)
            logger.warning(
                "Unit of work rolled back",
                extra={"error": type(translated).__name__, "sqlstate": _sqlstate(exc)},
            )
            raise translated from exc
        except PoolTimeoutError as exc:
            logger.warning("No database connection available: %s", exc)
            raise LockTimeoutError(details={"error": "pool_timeout"}) from exc
        except SQLAlchemyError as exc:
            logger.error("Ledger store failure: %s", exc)
            raise StoreError(details={"error": type(exc).__name__}) from exc
        except OSError as exc:
            logger.error("Ledger store unreachable: %s", exc)
            raise StoreError(details={"error": type(exc).__name__}) from exc
        finally:
            await session.close()

    @asynccontextmanager
    async def snapshot(self) -> AsyncIterator[AsyncSession]:
        """Read transaction for queries; joined reads are issued as single statements."""
        async with self.unit_of_work() as session:
            yield session

    async def _apply_lock_timeout(self, session: AsyncSession) -> None:
        if self.engine.dialect.name == "postgresql":
            timeout_ms = int(self.lock_timeout_seconds * 1000)
            await session.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))

    @staticmethod
    async def lock_cash_accounts(session: AsyncSession, cash_ids: Iterable[int]) -> Dict[int, CashAccount]:
        """
        Lock the given cash account rows for the rest of the unit of work.

        Rows are locked in ascending id order so that two units of work
        touching the same pair of accounts cannot deadlock.

        Raises:
            NotFoundError: Any id does not resolve
        """
        wanted = sorted(set(cash_ids))
        accounts: Dict[int, CashAccount] = {}
        for cash_id in wanted:
            result = await session.execute(
                select(CashAccount)
                .where(CashAccount.id == cash_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            account = result.scalar_one_or_none()
            if account is None:
                raise NotFoundError("CashAccount", cash_id)
            accounts[cash_id] = account
        return accounts

    @staticmethod
    async def lock_entry(session: AsyncSession, model: Type, entry_id: int):
        """Load one row (entry or denomination) FOR UPDATE, or None."""
        result = await session.execute(
            select(model)
            .where(model.id == entry_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def require(session: AsyncSession, model: Type, row_id: int, resource: str):
        """Fetch a referenced row or raise NotFoundError."""
        row = await session.get(model, row_id)
        if row is None:
            raise NotFoundError(resource, row_id)
        return row
