"""
Match State - Immutable snapshot of a Perudo match.

Design principles:
- Immutable: every transition returns a new MatchState
- Serializable: to_dict() output can be persisted or broadcast
- Storage-agnostic: the state machine never reads or writes storage
- Canonical seat order: player_order is fixed at join time
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


MIN_FACE = 1
MAX_FACE = 6
MAX_DICE = 6
MIN_PLAYERS = 2


class MatchPhase(Enum):
    """Phases of a match. LOBBY is the pre-game state."""
    LOBBY = "lobby"
    ROLLING = "rolling"
    AWAITING_FIRST_BID = "awaiting_first_bid"
    BIDDING = "bidding"
    REVEALING = "revealing"
    ROUND_COMPLETE = "round_complete"
    COMPLETED = "completed"


class PlayerStatus(Enum):
    """
    Seat status.

    GHOST and ZOMBIE are rule-variant states for eliminated players.
    DEAD is terminal. DISCONNECTED is recoverable through Reconnect.
    """
    ALIVE = "alive"
    GHOST = "ghost"
    ZOMBIE = "zombie"
    DISCONNECTED = "disconnected"
    DEAD = "dead"


class Direction(Enum):
    """Turn direction, chosen by the starting player of each round."""
    CLOCKWISE = "clockwise"
    COUNTER_CLOCKWISE = "counter_clockwise"


class WinMethod(Enum):
    LAST_STANDING = "last_standing"
    SEVEN_CALZAS = "seven_calzas"
    SEVEN_DICE = "seven_dice"


# Statuses whose dice are on the table at resolution time
DICE_ON_TABLE = frozenset({PlayerStatus.ALIVE, PlayerStatus.DISCONNECTED})


@dataclass(frozen=True)
class MatchSettings:
    """
    Rule options for a match.

    ghost_calza_revives selects the outcome of a successful ghost calza:
    revive with one die, or stay a ghost and only bank the calza.
    """
    starting_dice: int = 5
    seven_dice_wins: bool = True
    seven_calzas_wins: bool = True
    palifico_rules: bool = True
    ghost_mode: bool = True
    max_players: int = 9
    ghost_calza_revives: bool = False

    def __post_init__(self):
        if not 1 <= self.starting_dice <= MAX_DICE:
            raise ValueError(f"starting_dice must be between 1 and {MAX_DICE}")
        if self.max_players < MIN_PLAYERS:
            raise ValueError(f"max_players must be at least {MIN_PLAYERS}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "starting_dice": self.starting_dice,
            "seven_dice_wins": self.seven_dice_wins,
            "seven_calzas_wins": self.seven_calzas_wins,
            "palifico_rules": self.palifico_rules,
            "ghost_mode": self.ghost_mode,
            "max_players": self.max_players,
            "ghost_calza_revives": self.ghost_calza_revives,
        }


@dataclass(frozen=True)
class Wager:
    """A claim that at least `count` dice on the table show `value`."""
    player_id: str
    count: int
    value: int

    def to_dict(self) -> dict[str, Any]:
        return {"player_id": self.player_id, "count": self.count, "value": self.value}


@dataclass(frozen=True)
class Player:
    """
    A seat in the match.

    Owned by the match; no player outlives it.
    """
    player_id: str
    dice_count: int = 5
    current_dice: tuple[int, ...] = ()
    calza_count: int = 0
    status: PlayerStatus = PlayerStatus.ALIVE
    is_ready: bool = False

    @property
    def is_alive(self) -> bool:
        return self.status == PlayerStatus.ALIVE

    @property
    def dice_on_table(self) -> bool:
        """Whether this player's dice count at resolution."""
        return self.status in DICE_ON_TABLE

    def _copy_with(self, **kwargs) -> Player:
        return replace(self, **kwargs)

    def to_dict(self, reveal_dice: bool = True) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "dice_count": self.dice_count,
            "current_dice": list(self.current_dice) if reveal_dice else [],
            "calza_count": self.calza_count,
            "status": self.status.value,
            "is_ready": self.is_ready,
        }


@dataclass(frozen=True)
class RoundResult:
    """
    Outcome of a dudo or calza, staged until StartNextRound applies it.

    dice_deltas maps player id to the dice change. calza_credit names the
    player whose lifetime calza counter goes up, if any.
    """
    action: str  # "dudo" or "calza"
    actor_id: str
    bidder_id: str
    wager: Wager
    actual_count: int
    per_value_totals: dict[int, int]
    winner_id: str | None = None
    loser_id: str | None = None
    success: bool | None = None  # calza only
    dice_deltas: dict[str, int] = field(default_factory=dict)
    calza_credit: str | None = None
    eliminate_ghost: str | None = None
    revive_ghost: str | None = None

    @property
    def claimed_count(self) -> int:
        return self.wager.count

    @property
    def subject_id(self) -> str:
        """The player the round was resolved against (next round sequences from here)."""
        if self.action == "dudo" and self.loser_id:
            return self.loser_id
        return self.actor_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "actor_id": self.actor_id,
            "bidder_id": self.bidder_id,
            "wager": self.wager.to_dict(),
            "actual_count": self.actual_count,
            "claimed_count": self.claimed_count,
            "per_value_totals": {str(k): v for k, v in self.per_value_totals.items()},
            "winner_id": self.winner_id,
            "loser_id": self.loser_id,
            "success": self.success,
            "dice_deltas": dict(self.dice_deltas),
        }


@dataclass(frozen=True)
class MatchState:
    """
    Complete match state at a point in time.

    This is the single source of truth. All changes go through
    GameStateMachine.apply(); version increases with every accepted
    transition so a store can compare-and-swap on it.
    """
    match_id: str
    settings: MatchSettings = field(default_factory=MatchSettings)

    player_order: tuple[str, ...] = ()
    players: dict[str, Player] = field(default_factory=dict)

    phase: MatchPhase = MatchPhase.LOBBY
    current_player_id: str | None = None
    direction: Direction = Direction.CLOCKWISE
    round_number: int = 0

    # Wager and Palifico state for the current round
    current_wager: Wager | None = None
    is_palifico: bool = False
    palifico_player_id: str | None = None
    palifico_value_lock: int | None = None
    last_total_dice: int | None = None

    pending_round_result: RoundResult | None = None

    winner_id: str | None = None
    win_method: WinMethod | None = None

    version: int = 0

    @classmethod
    def create(
        cls,
        match_id: str,
        player_ids: list[str] | tuple[str, ...] = (),
        settings: MatchSettings | None = None,
    ) -> MatchState:
        """Create a lobby with players seated in join order."""
        settings = settings or MatchSettings()
        if len(set(player_ids)) != len(player_ids):
            raise ValueError("player ids must be unique")
        players = {
            pid: Player(player_id=pid, dice_count=settings.starting_dice)
            for pid in player_ids
        }
        return cls(
            match_id=match_id,
            settings=settings,
            player_order=tuple(player_ids),
            players=players,
        )

    @property
    def current_player(self) -> Player | None:
        if self.current_player_id is None:
            return None
        return self.players[self.current_player_id]

    @property
    def num_players(self) -> int:
        return len(self.player_order)

    @property
    def is_started(self) -> bool:
        return self.phase != MatchPhase.LOBBY

    @property
    def is_completed(self) -> bool:
        return self.phase == MatchPhase.COMPLETED

    def get_player(self, player_id: str) -> Player | None:
        """Get player by ID."""
        return self.players.get(player_id)

    def alive_players(self) -> list[Player]:
        """Alive players in canonical order."""
        return [self.players[pid] for pid in self.player_order if self.players[pid].is_alive]

    def total_dice_on_table(self) -> int:
        """Sum of dice held by players whose dice count at resolution."""
        return sum(p.dice_count for p in self.players.values() if p.dice_on_table)

    def with_player(self, player: Player) -> MatchState:
        """Return new state with updated player."""
        new_players = dict(self.players)
        new_players[player.player_id] = player
        return self._copy_with(players=new_players)

    def _copy_with(self, **kwargs) -> MatchState:
        """Create a copy with some fields replaced."""
        return replace(self, **kwargs)

    def to_dict(self, viewer_id: str | None = None, reveal_all: bool = True) -> dict[str, Any]:
        """
        Serialize for persistence or broadcast.

        With reveal_all false, only viewer_id's dice are included (none
        when viewer_id is None).
        """
        def reveal(pid: str) -> bool:
            return reveal_all or pid == viewer_id

        return {
            "match_id": self.match_id,
            "settings": self.settings.to_dict(),
            "player_order": list(self.player_order),
            "players": {
                pid: self.players[pid].to_dict(reveal_dice=reveal(pid))
                for pid in self.player_order
            },
            "phase": self.phase.value,
            "current_player_id": self.current_player_id,
            "direction": self.direction.value,
            "round_number": self.round_number,
            "current_wager": self.current_wager.to_dict() if self.current_wager else None,
            "is_palifico": self.is_palifico,
            "palifico_player_id": self.palifico_player_id,
            "palifico_value_lock": self.palifico_value_lock,
            "pending_round_result": (
                self.pending_round_result.to_dict() if self.pending_round_result else None
            ),
            "winner_id": self.winner_id,
            "win_method": self.win_method.value if self.win_method else None,
            "version": self.version,
        }
