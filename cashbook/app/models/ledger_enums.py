"""
Ledger enumerations.

Stored labels are the fixed values the bookkeeping records have always used.
"""

import enum


class EntryKind(str, enum.Enum):
    """Ledger entry kind; decides the sign an amount contributes to a balance."""
    INCOME = "income"  # Credits the cash account
    OUTCOME = "outcome"  # Debits the cash account

    @property
    def sign(self) -> int:
        return 1 if self is EntryKind.INCOME else -1


class IncomeSource(str, enum.Enum):
    """Income source labels."""
    TITHE = "Diezmo"
    OFFERING = "Ofrenda"
    FIRST_FRUITS = "Primicia"
    DONATION = "Donación"
    EVENT = "Evento"
    CAFETERIA = "Cafetería"
    OTHER = "Otro"


class OutcomeCategory(str, enum.Enum):
    """Outcome category labels."""
    FIXED = "Fijos"
    VARIABLE = "Variables"
    OTHER = "Otro"
