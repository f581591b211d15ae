"""
Ledger Schemas.

Typed inputs accepted by the ledger service and the read models it returns.
Amounts are Decimal with at most two fractional digits; floats are never
used for money.
"""

import datetime as dt
from decimal import Decimal
from typing import ClassVar, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cashbook.app.models.ledger_enums import IncomeSource, OutcomeCategory

CENT = Decimal("0.01")


def _quantize(value: Optional[Decimal]) -> Optional[Decimal]:
    return value.quantize(CENT) if value is not None else None


def _reject_float(value):
    if isinstance(value, float):
        raise ValueError("Money must be given as a Decimal or a string, not a float")
    return value


def _strip_required(value: Optional[str], field: str) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError(f"{field} must not be empty")
    return value


# Creation

class EntryCreateBase(BaseModel):
    """Fields shared by incomes and outcomes."""
    model_config = ConfigDict(extra="forbid")

    cash_id: int = Field(..., gt=0)
    week_id: int = Field(..., gt=0)
    date: dt.date
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)

    @field_validator("amount", mode="before")
    @classmethod
    def amount_not_float(cls, v):
        return _reject_float(v)

    @field_validator("amount")
    @classmethod
    def normalize_amount(cls, v: Decimal) -> Decimal:
        return _quantize(v)


class IncomeCreate(EntryCreateBase):
    """Schema for creating an income."""
    person_id: Optional[int] = Field(None, gt=0)
    source: IncomeSource

    @model_validator(mode="after")
    def tithe_requires_person(self):
        if self.source is IncomeSource.TITHE and self.person_id is None:
            raise ValueError("A tithe must be associated with a person")
        return self


class OutcomeCreate(EntryCreateBase):
    """Schema for creating an outcome."""
    description: str = Field(..., min_length=1, max_length=255)
    category: OutcomeCategory

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str) -> str:
        return _strip_required(v, "description")


# Update

class EntryUpdateBase(BaseModel):
    """
    Partial update. Only fields explicitly set are applied; required columns
    may not be set to null.
    """
    model_config = ConfigDict(extra="forbid")

    required_fields: ClassVar[Tuple[str, ...]] = ("cash_id", "week_id", "date", "amount")

    cash_id: Optional[int] = Field(None, gt=0)
    week_id: Optional[int] = Field(None, gt=0)
    date: Optional[dt.date] = None
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)

    @field_validator("amount", mode="before")
    @classmethod
    def amount_not_float(cls, v):
        return _reject_float(v)

    @field_validator("amount")
    @classmethod
    def normalize_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _quantize(v)

    @model_validator(mode="after")
    def check_changes(self):
        changes = self.model_dump(exclude_unset=True)
        if not changes:
            raise ValueError("At least one field is required for an update")
        for name in self.required_fields:
            if name in changes and changes[name] is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict:
        """Explicitly set fields only."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class IncomeUpdate(EntryUpdateBase):
    """Schema for updating an income."""
    required_fields: ClassVar[Tuple[str, ...]] = ("cash_id", "week_id", "date", "amount", "source")

    person_id: Optional[int] = Field(None, gt=0)
    source: Optional[IncomeSource] = None


class OutcomeUpdate(EntryUpdateBase):
    """Schema for updating an outcome."""
    required_fields: ClassVar[Tuple[str, ...]] = (
        "cash_id", "week_id", "date", "amount", "description", "category"
    )

    description: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[OutcomeCategory] = None

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: Optional[str]) -> Optional[str]:
        return _strip_required(v, "description")


# Queries

class EntryFilter(BaseModel):
    """Optional filters for listing entries. Kind-specific fields are ignored for the other kind."""
    model_config = ConfigDict(extra="forbid")

    cash_id: Optional[int] = None
    week_id: Optional[int] = None
    date: Optional[dt.date] = None
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    person_id: Optional[int] = None
    source: Optional[IncomeSource] = None
    category: Optional[OutcomeCategory] = None


# Read models

class EntryRead(BaseModel):
    id: int
    cash_id: int
    cash_name: str
    week_id: int
    date: dt.date
    amount: Decimal


class IncomeRead(EntryRead):
    person_id: Optional[int]
    source: IncomeSource


class OutcomeRead(EntryRead):
    description: str
    category: OutcomeCategory


# Cash accounts

class CashAccountCreate(BaseModel):
    """Schema for creating a cash account."""
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=100)
    opening_balance: Decimal = Field(Decimal("0.00"), max_digits=12, decimal_places=2)
    soft_limit: Optional[Decimal] = Field(None, max_digits=12, decimal_places=2)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return _strip_required(v, "name")

    @field_validator("opening_balance", "soft_limit", mode="before")
    @classmethod
    def money_not_float(cls, v):
        return _reject_float(v)

    @field_validator("opening_balance", "soft_limit")
    @classmethod
    def normalize_money(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _quantize(v)


class CashAccountUpdate(BaseModel):
    """Administrative edit; the balance is not a field here."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    soft_limit: Optional[Decimal] = Field(None, max_digits=12, decimal_places=2)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        return _strip_required(v, "name")

    @field_validator("soft_limit", mode="before")
    @classmethod
    def money_not_float(cls, v):
        return _reject_float(v)

    @field_validator("soft_limit")
    @classmethod
    def normalize_money(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _quantize(v)

    @model_validator(mode="after")
    def check_changes(self):
        if not self.model_fields_set:
            raise ValueError("At least one field is required for an update")
        if "name" in self.model_fields_set and self.name is None:
            raise ValueError("name cannot be null")
        return self


class CashAccountRead(BaseModel):
    id: int
    name: str
    opening_balance: Decimal
    balance: Decimal
    soft_limit: Optional[Decimal]

    model_config = ConfigDict(from_attributes=True)


class BalanceDrift(BaseModel):
    """Difference between a stored balance and the one derived from the ledger."""
    cash_id: int
    name: str
    stored_balance: Decimal
    derived_balance: Decimal
    repaired: bool

    @property
    def drift(self) -> Decimal:
        return self.stored_balance - self.derived_balance


# Reference rows

class WeekCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    week_start: dt.date
    week_end: dt.date

    @model_validator(mode="after")
    def check_range(self):
        if self.week_end < self.week_start:
            raise ValueError("week_end must not precede week_start")
        return self


class WeekRead(BaseModel):
    id: int
    week_start: dt.date
    week_end: dt.date

    model_config = ConfigDict(from_attributes=True)


class PersonCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dni: str = Field(..., min_length=1, max_length=20)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)

    @field_validator("dni", "first_name", "last_name")
    @classmethod
    def strip_text(cls, v: str, info) -> str:
        return _strip_required(v, info.field_name)


class PersonRead(BaseModel):
    id: int
    dni: str
    first_name: str
    last_name: str

    model_config = ConfigDict(from_attributes=True)


# Cash denominations

class CashDenominationCreate(BaseModel):
    """One face value counted in a cash account."""
    model_config = ConfigDict(extra="forbid")

    cash_id: int = Field(..., gt=0)
    denomination_value: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    quantity: Decimal = Field(Decimal("0.00"), ge=0, max_digits=15, decimal_places=2)

    @field_validator("denomination_value", "quantity", mode="before")
    @classmethod
    def money_not_float(cls, v):
        return _reject_float(v)

    @field_validator("denomination_value", "quantity")
    @classmethod
    def normalize_money(cls, v: Decimal) -> Decimal:
        return _quantize(v)


class CashDenominationUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    denomination_value: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    quantity: Optional[Decimal] = Field(None, ge=0, max_digits=15, decimal_places=2)

    @field_validator("denomination_value", "quantity", mode="before")
    @classmethod
    def money_not_float(cls, v):
        return _reject_float(v)

    @field_validator("denomination_value", "quantity")
    @classmethod
    def normalize_money(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _quantize(v)

    @model_validator(mode="after")
    def check_changes(self):
        if not self.model_fields_set:
            raise ValueError("At least one field is required for an update")
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class CashDenominationRead(BaseModel):
    id: int
    cash_id: int
    denomination_value: Decimal
    quantity: Decimal

    model_config = ConfigDict(from_attributes=True)

    @property
    def subtotal(self) -> Decimal:
        return (self.denomination_value * self.quantity).quantize(CENT)


class CashCount(BaseModel):
    """Physical count of a cash account next to its ledger balance."""
    cash_id: int
    name: str
    counted_total: Decimal
    balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.counted_total - self.balance
