"""
Round Resolver - Reveals the table and settles dudo and calza calls.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Mapping

from .state import Player, Wager, MIN_FACE, MAX_FACE, MAX_DICE


@dataclass(frozen=True)
class ResolutionOutcome:
    """What the table actually shows for a wager."""
    actual_count: int
    per_value_totals: dict[int, int]


@dataclass(frozen=True)
class DudoOutcome:
    loser_id: str
    winner_id: str
    bid_held: bool


@dataclass(frozen=True)
class CalzaOutcome:
    success: bool
    dice_delta: int


def die_matches(die: int, value: int, is_palifico: bool) -> bool:
    """A die counts toward `value` if it shows it, or is a wild ace outside Palifico."""
    if die == value:
        return True
    return not is_palifico and die == 1 and value != 1


def resolve(wager: Wager, players: Mapping[str, Player], is_palifico: bool) -> ResolutionOutcome:
    """
    Tally every die still on the table.

    Disconnected players' last roll counts; ghosts and the dead hold no dice.
    """
    totals = {face: 0 for face in range(MIN_FACE, MAX_FACE + 1)}
    actual = 0
    for player in players.values():
        if not player.dice_on_table:
            continue
        for die in player.current_dice:
            totals[die] += 1
            if die_matches(die, wager.value, is_palifico):
                actual += 1
    return ResolutionOutcome(actual_count=actual, per_value_totals=totals)


def resolve_dudo(outcome: ResolutionOutcome, wager: Wager, challenger_id: str) -> DudoOutcome:
    """If the bid held, the challenger loses; otherwise the bidder does."""
    if outcome.actual_count >= wager.count:
        return DudoOutcome(loser_id=challenger_id, winner_id=wager.player_id, bid_held=True)
    return DudoOutcome(loser_id=wager.player_id, winner_id=challenger_id, bid_held=False)


def resolve_calza(outcome: ResolutionOutcome, wager: Wager, caller_id: str) -> CalzaOutcome:
    """
    An exact count wins the caller a die; anything else costs one.

    The caller must not be the wager's author; the state machine rejects
    that before resolving.
    """
    if caller_id == wager.player_id:
        raise ValueError("cannot calza own bid")
    success = outcome.actual_count == wager.count
    return CalzaOutcome(success=success, dice_delta=1 if success else -1)


def apply_dice_delta(dice_count: int, delta: int) -> tuple[int, bool]:
    """
    Apply a dice delta, capped to 0..MAX_DICE.

    Returns (new_count, overflowed); overflowed means a die was earned
    while already holding the maximum (the "phantom seventh die").
    """
    raw = dice_count + delta
    if raw > MAX_DICE:
        return MAX_DICE, True
    return max(0, raw), False
