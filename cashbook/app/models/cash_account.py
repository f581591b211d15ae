"""
Cash Account database model.

A cash account is a named pool of money (a cash box). Its balance is derived
from the ledger entries attributed to it and is only ever written by the
ledger service.
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime
from sqlalchemy.sql import func
from cashbook.app.db.session import Base


class CashAccount(Base):
    """
    Cash Account model.

    Invariant: balance == opening_balance + sum(incomes) - sum(outcomes).
    soft_limit is informational and never blocks a mutation.
    """
    __tablename__ = "cash_accounts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)

    # Financials
    opening_balance = Column(Numeric(12, 2), nullable=False, default=0)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    soft_limit = Column(Numeric(12, 2), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<CashAccount(id={self.id}, name='{self.name}', balance={self.balance})>"
