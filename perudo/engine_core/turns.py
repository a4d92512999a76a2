"""
Turn Sequencer - Picks the next player to act.
"""

from __future__ import annotations
from typing import Mapping, Sequence

from .state import Direction, Player, PlayerStatus


def is_eligible(player: Player, require_connected: bool = True) -> bool:
    """
    Whether a seat can be handed the turn.

    Connected turns go to ALIVE seats only. Without that requirement any
    seat with dice on the table qualifies, DISCONNECTED included.
    """
    if require_connected:
        return player.status == PlayerStatus.ALIVE
    return player.dice_on_table


def next_player(
    player_order: Sequence[str],
    players: Mapping[str, Player],
    from_player_id: str,
    direction: Direction,
    require_connected: bool = True,
) -> str | None:
    """
    Return the next eligible player after `from_player_id`.

    Walks the canonical order in `direction` with wrap-around. The
    starting seat itself need not be eligible, so this also picks a
    round's starter after the previous subject was eliminated. Returns
    `from_player_id` when it is the only eligible seat and None when no
    seat is eligible.

    Bids advance with require_connected=True. Round starters are picked
    with require_connected=False so a round can open on a disconnected
    seat; the state machine hands that turn on when the roll ends.
    """
    if from_player_id not in player_order:
        raise KeyError(f"Player {from_player_id} not seated")

    n = len(player_order)
    start = player_order.index(from_player_id)
    step = 1 if direction == Direction.CLOCKWISE else -1

    for offset in range(1, n + 1):
        candidate = player_order[(start + step * offset) % n]
        if is_eligible(players[candidate], require_connected):
            return candidate
    return None


def first_eligible(player_order: Sequence[str], players: Mapping[str, Player]) -> str | None:
    """First eligible player in canonical order."""
    for pid in player_order:
        if is_eligible(players[pid]):
            return pid
    return None
