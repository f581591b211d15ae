"""
Balance Adjuster.

Pure computation of the balance deltas implied by creating, changing or
deleting a ledger entry. No I/O; the ledger service applies the deltas to
locked cash account rows.

Deltas come back ordered by cash account id, which is the order the service
locks rows in.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List

from cashbook.app.core.exceptions import InvalidAmountError
from cashbook.app.models.ledger_enums import EntryKind

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class BalanceDelta:
    """Signed change to apply to one cash account's balance."""
    cash_id: int
    delta: Decimal


def validate_amount(amount: Decimal) -> Decimal:
    """
    Check an entry amount before any delta is derived from it.

    Raises:
        InvalidAmountError: Not a Decimal, not finite, not strictly positive,
            or more than two fractional digits.
    """
    if isinstance(amount, bool) or not isinstance(amount, Decimal):
        raise InvalidAmountError(amount)
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmountError(amount)
    if amount != amount.quantize(CENT):
        raise InvalidAmountError(amount)
    return amount.quantize(CENT)


def creation_delta(kind: EntryKind, cash_id: int, amount: Decimal) -> BalanceDelta:
    """Delta for a newly recorded entry."""
    return BalanceDelta(cash_id, kind.sign * validate_amount(amount))


def deletion_delta(kind: EntryKind, cash_id: int, amount: Decimal) -> BalanceDelta:
    """Delta that reverses a deleted entry."""
    return BalanceDelta(cash_id, kind.sign * -validate_amount(amount))


def update_deltas(
    kind: EntryKind,
    old_cash_id: int,
    old_amount: Decimal,
    new_cash_id: int,
    new_amount: Decimal,
) -> List[BalanceDelta]:
    """
    Deltas for moving an entry from (old_cash_id, old_amount) to (new_cash_id, new_amount).

    Same account: one delta of sign * (new - old), or none when it nets to zero.
    Different accounts: the old account loses the old amount and the new
    account gains the new amount; both deltas must be applied together.
    """
    old_amount = validate_amount(old_amount)
    new_amount = validate_amount(new_amount)

    if old_cash_id == new_cash_id:
        delta = kind.sign * (new_amount - old_amount)
        if delta == 0:
            return []
        return [BalanceDelta(old_cash_id, delta)]

    deltas = [
        BalanceDelta(old_cash_id, kind.sign * -old_amount),
        BalanceDelta(new_cash_id, kind.sign * new_amount),
    ]
    return sorted(deltas, key=lambda d: d.cash_id)


def merge_deltas(deltas: List[BalanceDelta]) -> List[BalanceDelta]:
    """Collapse deltas per cash account (bulk operations), dropping zero nets."""
    totals = {}
    for item in deltas:
        totals[item.cash_id] = totals.get(item.cash_id, ZERO) + item.delta
    return [BalanceDelta(cash_id, total) for cash_id, total in sorted(totals.items()) if total != 0]


def apply_delta(balance: Decimal, delta: BalanceDelta) -> Decimal:
    """New balance after applying a delta, at cent precision."""
    return (Decimal(balance) + delta.delta).quantize(CENT)


def derive_balance(opening_balance: Decimal, income_total: Decimal, outcome_total: Decimal) -> Decimal:
    """Balance implied by the ledger history of one cash account."""
    return (Decimal(opening_balance) + Decimal(income_total) - Decimal(outcome_total)).quantize(CENT)
