"""
Command System - Commands, rejections, and transition results.

Commands represent:
1. Player input (bid, dudo, calza, direction, reconnect)
2. Lobby management (join, leave, ready, settings, start)
3. Internal timer transitions scheduled by the caller

All state changes flow through commands.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .effects import Effect
from .state import Direction, MatchPhase, MatchSettings


class CommandType(Enum):
    """Types of commands accepted by the state machine."""
    # Lobby
    JOIN = "join"
    LEAVE = "leave"
    SET_READY = "set_ready"
    UPDATE_SETTINGS = "update_settings"
    START_GAME = "start_game"

    # Player actions
    SET_DIRECTION = "set_direction"
    BID = "bid"
    DUDO = "dudo"
    CALZA = "calza"

    # Connection
    DISCONNECT = "disconnect"
    RECONNECT = "reconnect"

    # Internal, caller-scheduled
    ADVANCE_FROM_ROLLING = "advance_from_rolling"
    ADVANCE_FROM_REVEALING = "advance_from_revealing"
    START_NEXT_ROUND = "start_next_round"


INTERNAL_COMMANDS = frozenset({
    CommandType.ADVANCE_FROM_ROLLING,
    CommandType.ADVANCE_FROM_REVEALING,
    CommandType.START_NEXT_ROUND,
})


@dataclass(frozen=True)
class Command:
    """
    A command to be applied to the match state.

    Only the fields relevant to the command type are set; validation
    happens in the state machine.
    """
    command_type: CommandType
    player_id: str | None = None
    count: int | None = None
    value: int | None = None
    direction: Direction | None = None
    settings: MatchSettings | None = None
    ready: bool | None = None

    @property
    def is_internal(self) -> bool:
        return self.command_type in INTERNAL_COMMANDS

    @classmethod
    def join(cls, player_id: str) -> Command:
        return cls(CommandType.JOIN, player_id=player_id)

    @classmethod
    def leave(cls, player_id: str) -> Command:
        return cls(CommandType.LEAVE, player_id=player_id)

    @classmethod
    def set_ready(cls, player_id: str, ready: bool = True) -> Command:
        return cls(CommandType.SET_READY, player_id=player_id, ready=ready)

    @classmethod
    def update_settings(cls, settings: MatchSettings) -> Command:
        return cls(CommandType.UPDATE_SETTINGS, settings=settings)

    @classmethod
    def start_game(cls, settings: MatchSettings | None = None) -> Command:
        """Factory for game start. Settings, if given, replace the lobby's."""
        return cls(CommandType.START_GAME, settings=settings)

    @classmethod
    def set_direction(cls, player_id: str, direction: Direction) -> Command:
        return cls(CommandType.SET_DIRECTION, player_id=player_id, direction=direction)

    @classmethod
    def bid(cls, player_id: str, count: int, value: int) -> Command:
        """Factory for a bid: at least `count` dice showing `value`."""
        return cls(CommandType.BID, player_id=player_id, count=count, value=value)

    @classmethod
    def dudo(cls, player_id: str) -> Command:
        return cls(CommandType.DUDO, player_id=player_id)

    @classmethod
    def calza(cls, player_id: str) -> Command:
        return cls(CommandType.CALZA, player_id=player_id)

    @classmethod
    def disconnect(cls, player_id: str) -> Command:
        return cls(CommandType.DISCONNECT, player_id=player_id)

    @classmethod
    def reconnect(cls, player_id: str) -> Command:
        return cls(CommandType.RECONNECT, player_id=player_id)

    @classmethod
    def advance_from_rolling(cls) -> Command:
        return cls(CommandType.ADVANCE_FROM_ROLLING)

    @classmethod
    def advance_from_revealing(cls) -> Command:
        return cls(CommandType.ADVANCE_FROM_REVEALING)

    @classmethod
    def start_next_round(cls) -> Command:
        return cls(CommandType.START_NEXT_ROUND)


class RejectionCode(Enum):
    """Caller-facing rejection reasons. None of them change the state."""
    INVALID_BID = "INVALID_BID"
    NOT_YOUR_TURN = "NOT_YOUR_TURN"
    WRONG_PHASE = "WRONG_PHASE"
    NO_ACTIVE_WAGER = "NO_ACTIVE_WAGER"
    SELF_CALZA_FORBIDDEN = "SELF_CALZA_FORBIDDEN"
    PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"
    GAME_ALREADY_COMPLETED = "GAME_ALREADY_COMPLETED"
    MATCH_FULL = "MATCH_FULL"
    NOT_ENOUGH_PLAYERS = "NOT_ENOUGH_PLAYERS"
    INVALID_COMMAND = "INVALID_COMMAND"


@dataclass(frozen=True)
class Rejection:
    """A typed rejection with a human-readable message."""
    code: RejectionCode
    message: str
    reason: str | None = None  # INVALID_BID
    expected: tuple[MatchPhase, ...] = ()  # WRONG_PHASE
    actual: MatchPhase | None = None  # WRONG_PHASE

    @classmethod
    def invalid_bid(cls, reason: str) -> Rejection:
        return cls(RejectionCode.INVALID_BID, f"Invalid bid: {reason}", reason=reason)

    @classmethod
    def wrong_phase(cls, expected: tuple[MatchPhase, ...], actual: MatchPhase) -> Rejection:
        names = ", ".join(p.value for p in expected)
        return cls(
            RejectionCode.WRONG_PHASE,
            f"Expected phase {names}, match is in {actual.value}",
            expected=expected,
            actual=actual,
        )

    @classmethod
    def not_your_turn(cls, player_id: str) -> Rejection:
        return cls(RejectionCode.NOT_YOUR_TURN, f"Not {player_id}'s turn")

    @classmethod
    def player_not_found(cls, player_id: str | None) -> Rejection:
        return cls(RejectionCode.PLAYER_NOT_FOUND, f"Player {player_id} not found")

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "reason": self.reason,
            "expected": [p.value for p in self.expected],
            "actual": self.actual.value if self.actual else None,
        }


class InvariantViolation(AssertionError):
    """
    Raised when the state machine is driven from a malformed state.

    These are programming errors in the caller (for example a timer
    command applied twice), never user errors.
    """


@dataclass
class TransitionResult:
    """
    Result of applying a command.

    Contains:
    - Whether the command was accepted
    - New state (if accepted)
    - Effects for the caller to persist/broadcast
    - Typed rejection (if refused)
    """
    success: bool
    new_state: Any | None = None  # MatchState
    effects: list[Effect] = field(default_factory=list)
    rejection: Rejection | None = None

    @property
    def error(self) -> str | None:
        return self.rejection.message if self.rejection else None

    @property
    def error_code(self) -> str | None:
        return self.rejection.code.value if self.rejection else None

    @classmethod
    def failure(cls, rejection: Rejection) -> TransitionResult:
        """Create a failure result."""
        return cls(success=False, rejection=rejection)

    @classmethod
    def success_with_state(cls, state: Any, effects: list[Effect] | None = None) -> TransitionResult:
        """Create a success result with new state."""
        return cls(success=True, new_state=state, effects=effects or [])
