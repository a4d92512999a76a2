"""
Pytest fixtures for Perudo tests.
"""

import pytest

from ..engine_core.state import (
    MatchState, MatchSettings, MatchPhase, Player, PlayerStatus, Direction,
)
from ..engine_core.dice import DiceEngine
from ..engine_core.state_machine import GameStateMachine


def build_state(
    dice: dict[str, list[int]],
    phase: MatchPhase = MatchPhase.AWAITING_FIRST_BID,
    current: str | None = None,
    settings: MatchSettings | None = None,
    **kwargs,
) -> MatchState:
    """
    Build a running match with fixed dice.

    Players are seated in dict order; the first one holds the turn unless
    `current` says otherwise. Extra keyword arguments override MatchState
    fields.
    """
    players = {
        pid: Player(
            player_id=pid,
            dice_count=len(faces),
            current_dice=tuple(faces),
            status=PlayerStatus.ALIVE if faces else PlayerStatus.DEAD,
        )
        for pid, faces in dice.items()
    }
    order = tuple(dice)
    fields = dict(
        match_id="test_match",
        settings=settings or MatchSettings(),
        player_order=order,
        players=players,
        phase=phase,
        current_player_id=current or order[0],
        direction=Direction.CLOCKWISE,
        round_number=1,
    )
    fields.update(kwargs)
    return MatchState(**fields)


@pytest.fixture
def machine() -> GameStateMachine:
    """State machine with seeded dice."""
    return GameStateMachine(dice=DiceEngine.seeded(42))


@pytest.fixture
def lobby() -> MatchState:
    """A three-player lobby with default settings."""
    return MatchState.create("test_match", ["ana", "ben", "cal"])


@pytest.fixture
def two_player_state() -> MatchState:
    """Two players, five dice each, waiting for the first bid from p1."""
    return build_state({
        "p1": [3, 3, 1, 5, 6],
        "p2": [2, 3, 4, 1, 6],
    })


@pytest.fixture
def three_player_state() -> MatchState:
    """Three players waiting for the first bid from ana."""
    return build_state({
        "ana": [2, 2, 5, 1, 6],
        "ben": [4, 4, 4, 3, 1],
        "cal": [6, 6, 2, 5, 3],
    })
