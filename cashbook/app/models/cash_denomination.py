"""
Cash Denomination database model.

Count of notes and coins of one face value held in a cash account. The
counted total is compared with the ledger balance; it never changes it.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, UniqueConstraint, CheckConstraint
from cashbook.app.db.session import Base


class CashDenomination(Base):
    __tablename__ = "cash_denominations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    cash_id = Column(
        Integer,
        ForeignKey('cash_accounts.id', ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
        index=True,
    )
    denomination_value = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Numeric(15, 2), nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("cash_id", "denomination_value", name="uq_cash_denominations_value"),
        CheckConstraint("denomination_value > 0", name="ck_cash_denominations_value_positive"),
        CheckConstraint("quantity >= 0", name="ck_cash_denominations_quantity"),
    )

    def __repr__(self):
        return f"<CashDenomination(cash_id={self.cash_id}, value={self.denomination_value}, quantity={self.quantity})>"
