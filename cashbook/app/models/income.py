"""
Income Entry database model.

Positive movement credited to one cash account.
"""

from sqlalchemy import Column, Integer, Numeric, Date, ForeignKey, Enum, CheckConstraint
from cashbook.app.db.session import Base
from cashbook.app.models.ledger_enums import IncomeSource


class IncomeEntry(Base):
    """
    Income Entry model.

    amount is always stored positive; the kind gives the sign.
    """
    __tablename__ = "incomes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Linkage
    cash_id = Column(Integer, ForeignKey('cash_accounts.id'), nullable=False, index=True)
    week_id = Column(Integer, ForeignKey('weeks.id'), nullable=False, index=True)
    person_id = Column(Integer, ForeignKey('persons.id'), nullable=True, index=True)

    # Entry details
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    source = Column(
        Enum(IncomeSource, name="income_source", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_incomes_amount_positive"),
    )

    def __repr__(self):
        return f"<IncomeEntry(id={self.id}, cash_id={self.cash_id}, amount={self.amount})>"
