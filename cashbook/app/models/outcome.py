"""
Outcome Entry database model.

Positive movement debited from one cash account.
"""

from sqlalchemy import Column, Integer, Numeric, Date, String, ForeignKey, Enum, CheckConstraint
from cashbook.app.db.session import Base
from cashbook.app.models.ledger_enums import OutcomeCategory


class OutcomeEntry(Base):
    """
    Outcome Entry model.

    amount is always stored positive; the kind gives the sign.
    """
    __tablename__ = "outcomes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Linkage
    cash_id = Column(Integer, ForeignKey('cash_accounts.id'), nullable=False, index=True)
    week_id = Column(Integer, ForeignKey('weeks.id'), nullable=False, index=True)

    # Entry details
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    description = Column(String(255), nullable=False)
    category = Column(
        Enum(OutcomeCategory, name="outcome_category", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_outcomes_amount_positive"),
    )

    def __repr__(self):
        return f"<OutcomeEntry(id={self.id}, cash_id={self.cash_id}, amount={self.amount})>"
