"""
Engine Core - Deterministic Perudo rules engine.

The engine is the runtime that:
1. Holds the match in an immutable MatchState
2. Rolls dice (DiceEngine)
3. Validates bids (validate_bid)
4. Resolves dudo and calza calls (resolve, resolve_dudo, resolve_calza)
5. Sequences turns (next_player)
6. Applies commands via the GameStateMachine
"""

from .state import (
    MatchState, MatchSettings, MatchPhase, Player, PlayerStatus,
    Wager, RoundResult, Direction, WinMethod,
)
from .command import (
    Command, CommandType, Rejection, RejectionCode, TransitionResult,
    InvariantViolation,
)
from .effects import (
    Effect, EffectType, DiceRolled, WagerPlaced, RoundResolved,
    PlayerEliminated, GameWon,
)
from .dice import DiceEngine, ScriptedDice
from .bidding import BidVerdict, validate_bid
from .resolution import ResolutionOutcome, resolve, resolve_dudo, resolve_calza
from .turns import next_player
from .state_machine import GameStateMachine, apply_command

__all__ = [
    "MatchState",
    "MatchSettings",
    "MatchPhase",
    "Player",
    "PlayerStatus",
    "Wager",
    "RoundResult",
    "Direction",
    "WinMethod",
    "Command",
    "CommandType",
    "Rejection",
    "RejectionCode",
    "TransitionResult",
    "InvariantViolation",
    "Effect",
    "EffectType",
    "DiceRolled",
    "WagerPlaced",
    "RoundResolved",
    "PlayerEliminated",
    "GameWon",
    "DiceEngine",
    "ScriptedDice",
    "BidVerdict",
    "validate_bid",
    "ResolutionOutcome",
    "resolve",
    "resolve_dudo",
    "resolve_calza",
    "next_player",
    "GameStateMachine",
    "apply_command",
]
