"""
Week database model.

Informational grouping referenced by every ledger entry.
"""

from sqlalchemy import Column, Integer, Date, CheckConstraint
from cashbook.app.db.session import Base


class Week(Base):
    __tablename__ = "weeks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    week_start = Column(Date, nullable=False, unique=True)
    week_end = Column(Date, nullable=False)

    __table_args__ = (
        CheckConstraint("week_start <= week_end", name="ck_weeks_range"),
    )

    def __repr__(self):
        return f"<Week(id={self.id}, {self.week_start}..{self.week_end})>"
