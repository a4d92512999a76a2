"""
Bid Validator - Decides whether a proposed wager may replace the current one.

Aces only matter when counting matches at resolution time; bid ordering
treats all six faces the same.
"""

from __future__ import annotations
from dataclasses import dataclass

from .state import Wager, MIN_FACE, MAX_FACE


PALIFICO_REJECTION = "palifico: value locked, count must increase"
INCREASE_REJECTION = "must strictly increase"


@dataclass(frozen=True)
class BidVerdict:
    """
    Result of validating a bid.

    lock_value is set on the first bid of a Palifico round: the caller
    must lock the round's value to it.
    """
    ok: bool
    reason: str | None = None
    lock_value: int | None = None

    @classmethod
    def accept(cls, lock_value: int | None = None) -> BidVerdict:
        return cls(ok=True, lock_value=lock_value)

    @classmethod
    def reject(cls, reason: str) -> BidVerdict:
        return cls(ok=False, reason=reason)


def validate_bid(
    current: Wager | None,
    proposed: Wager,
    is_palifico: bool,
    palifico_locked_value: int | None,
    total_dice_on_table: int,
) -> BidVerdict:
    """
    Validate a proposed wager.

    Args:
        current: Wager in force this round, or None for the opening bid
        proposed: The new wager
        is_palifico: Whether this is a Palifico round
        palifico_locked_value: Face locked by the opening Palifico bid
        total_dice_on_table: Upper bound for the claimed count

    Returns:
        BidVerdict
    """
    if not MIN_FACE <= proposed.value <= MAX_FACE:
        return BidVerdict.reject(f"value must be between {MIN_FACE} and {MAX_FACE}")
    if not 1 <= proposed.count <= total_dice_on_table:
        return BidVerdict.reject(f"count must be between 1 and {total_dice_on_table}")

    if current is None:
        if is_palifico:
            return BidVerdict.accept(lock_value=proposed.value)
        return BidVerdict.accept()

    if is_palifico:
        if proposed.value == palifico_locked_value and proposed.count > current.count:
            return BidVerdict.accept()
        return BidVerdict.reject(PALIFICO_REJECTION)

    if proposed.count > current.count:
        return BidVerdict.accept()
    if proposed.count == current.count and proposed.value > current.value:
        return BidVerdict.accept()
    return BidVerdict.reject(INCREASE_REJECTION)
