"""
Effects - What a transition did, for the caller to persist and broadcast.

Effects are facts, not instructions: the state machine has already
applied them to the returned MatchState.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .state import PlayerStatus, RoundResult, Wager, WinMethod


class EffectType(Enum):
    DICE_ROLLED = "dice_rolled"
    WAGER_PLACED = "wager_placed"
    ROUND_RESOLVED = "round_resolved"
    PLAYER_ELIMINATED = "player_eliminated"
    GAME_WON = "game_won"


@dataclass(frozen=True)
class DiceRolled:
    player_id: str
    dice: tuple[int, ...]

    effect_type = EffectType.DICE_ROLLED

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.effect_type.value, "player_id": self.player_id, "dice": list(self.dice)}


@dataclass(frozen=True)
class WagerPlaced:
    wager: Wager

    effect_type = EffectType.WAGER_PLACED

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.effect_type.value, "wager": self.wager.to_dict()}


@dataclass(frozen=True)
class RoundResolved:
    result: RoundResult

    effect_type = EffectType.ROUND_RESOLVED

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.effect_type.value, "result": self.result.to_dict()}


@dataclass(frozen=True)
class PlayerEliminated:
    player_id: str
    status: PlayerStatus = PlayerStatus.DEAD

    effect_type = EffectType.PLAYER_ELIMINATED

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.effect_type.value,
            "player_id": self.player_id,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class GameWon:
    winner_id: str
    method: WinMethod

    effect_type = EffectType.GAME_WON

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.effect_type.value,
            "winner_id": self.winner_id,
            "method": self.method.value,
        }


Effect = DiceRolled | WagerPlaced | RoundResolved | PlayerEliminated | GameWon
