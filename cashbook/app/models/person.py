"""
Person database model.

Optional counterpart of an income (required for tithes).
"""

from sqlalchemy import Column, Integer, String
from cashbook.app.db.session import Base


class Person(Base):
    __tablename__ = "persons"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    dni = Column(String(20), nullable=False, unique=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)

    def __repr__(self):
        return f"<Person(id={self.id}, dni='{self.dni}')>"
