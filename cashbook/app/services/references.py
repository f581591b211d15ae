"""
Reference rows used by ledger entries: weeks and persons.

Entries only point at these rows; nothing here touches a balance.
"""

import logging
from typing import Optional

from sqlalchemy import select

from cashbook.app.core.exceptions import ValidationError
from cashbook.app.domain.ledger.store import LedgerStore
from cashbook.app.models.person import Person
from cashbook.app.models.week import Week
from cashbook.app.schemas.ledger import PersonCreate, PersonRead, WeekCreate, WeekRead

logger = logging.getLogger("cashbook.references")


async def create_week(store: LedgerStore, data: WeekCreate) -> WeekRead:
    """
    Register a week.

    Raises:
        ValidationError: A week starting on the same date already exists
    """
    async with store.unit_of_work() as session:
        existing = await session.execute(select(Week.id).where(Week.week_start == data.week_start))
        if existing.first() is not None:
            raise ValidationError(
                f"Week starting {data.week_start} already exists",
                details={"week_start": data.week_start.isoformat()},
            )
        week = Week(week_start=data.week_start, week_end=data.week_end)
        session.add(week)
        await session.flush()
        result = WeekRead.model_validate(week)

    logger.info("Week created", extra={"week_id": result.id})
    return result


async def get_week(store: LedgerStore, week_id: int) -> Optional[WeekRead]:
    async with store.snapshot() as session:
        week = await session.get(Week, week_id)
        return WeekRead.model_validate(week) if week else None


async def create_person(store: LedgerStore, data: PersonCreate) -> PersonRead:
    """
    Register a person, unique by DNI.

    Raises:
        ValidationError: DNI already registered
    """
    async with store.unit_of_work() as session:
        existing = await session.execute(select(Person.id).where(Person.dni == data.dni))
        if existing.first() is not None:
            raise ValidationError(f"Person with DNI {data.dni} already exists", details={"dni": data.dni})
        person = Person(dni=data.dni, first_name=data.first_name, last_name=data.last_name)
        session.add(person)
        await session.flush()
        result = PersonRead.model_validate(person)

    logger.info("Person created", extra={"person_id": result.id})
    return result


async def get_person_by_dni(store: LedgerStore, dni: str) -> Optional[PersonRead]:
    """Look a person up by DNI, or None."""
    dni = (dni or "").strip()
    if not dni:
        raise ValidationError("DNI must not be empty")

    async with store.snapshot() as session:
        result = await session.execute(select(Person).where(Person.dni == dni))
        person = result.scalar_one_or_none()
        return PersonRead.model_validate(person) if person else None
