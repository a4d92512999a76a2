"""
Match Service - Business logic layer between transport and engine.

The service:
1. Serializes writes per match (one command at a time)
2. Applies commands through the GameStateMachine
3. Saves accepted snapshots with compare-and-swap
4. Formats views that hide other players' dice

This layer is framework-agnostic (can be used with FastAPI, a CLI, etc.)
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any
import logging
import threading

from ..engine_core import (
    Command, CommandType, DiceEngine, DiceRolled, Effect, GameStateMachine,
    MatchPhase, MatchSettings, MatchState, TransitionResult,
)
from ..session import MatchNotFound, MatchStore


logger = logging.getLogger(__name__)

# Phases in which every player's dice are visible
REVEALED_PHASES = frozenset({MatchPhase.REVEALING, MatchPhase.ROUND_COMPLETE, MatchPhase.COMPLETED})

# Internal command the caller schedules for each waiting phase
TIMER_COMMANDS = {
    MatchPhase.ROLLING: Command.advance_from_rolling,
    MatchPhase.REVEALING: Command.advance_from_revealing,
    MatchPhase.ROUND_COMPLETE: Command.start_next_round,
}

_TIMER_PHASES = {
    CommandType.ADVANCE_FROM_ROLLING: MatchPhase.ROLLING,
    CommandType.ADVANCE_FROM_REVEALING: MatchPhase.REVEALING,
    CommandType.START_NEXT_ROUND: MatchPhase.ROUND_COMPLETE,
}


def timer_for(state: MatchState) -> Command | None:
    """The internal command due after the current phase's display delay, if any."""
    factory = TIMER_COMMANDS.get(state.phase)
    return factory() if factory else None


def public_view(state: MatchState, viewer_id: str | None = None) -> dict[str, Any]:
    """
    State as one player may see it.

    Only the viewer's dice are included until the table is revealed.
    """
    return state.to_dict(viewer_id=viewer_id, reveal_all=state.phase in REVEALED_PHASES)


def public_effect(effect: Effect) -> dict[str, Any]:
    """Effect as broadcast to the whole table: rolled dice stay hidden."""
    data = effect.to_dict()
    if isinstance(effect, DiceRolled):
        data["dice_count"] = len(data.pop("dice"))
    return data


@dataclass
class MatchService:
    """
    Main service for match play.

    Usage:
        service = MatchService()

        state = service.create_match(["ana", "ben"])
        result = service.submit(state.match_id, Command.start_game())

        # After the roll animation
        service.run_timer(match_id, Command.advance_from_rolling(), result.new_state.version)
    """
    store: MatchStore = field(default_factory=MatchStore)
    machine: GameStateMachine = field(default_factory=GameStateMachine)

    _locks: defaultdict = field(default_factory=lambda: defaultdict(threading.Lock))

    @classmethod
    def seeded(cls, seed: int) -> MatchService:
        """Service with deterministic dice."""
        return cls(machine=GameStateMachine(dice=DiceEngine.seeded(seed)))

    def create_match(
        self,
        player_ids: list[str] | None = None,
        settings: MatchSettings | None = None,
        match_id: str | None = None,
    ) -> MatchState:
        """Create a lobby, optionally with an initial roster."""
        return self.store.create(player_ids, settings, match_id)

    def get_state(self, match_id: str) -> MatchState:
        """Latest snapshot. Raises MatchNotFound."""
        return self.store.get(match_id)

    def _lock_for(self, match_id: str) -> threading.Lock:
        """Write lock for a stored match. Unknown ids raise MatchNotFound without creating one."""
        self.store.get(match_id)
        return self._locks[match_id]

    def join(self, match_id: str, player_id: str) -> TransitionResult:
        """Seat a player in a lobby."""
        return self.submit(match_id, Command.join(player_id))

    def submit(self, match_id: str, command: Command) -> TransitionResult:
        """
        Apply a player command.

        Runs under the match's lock, so the snapshot read is the one the
        command is validated against. Rejections leave the store untouched.

        Raises:
            MatchNotFound: unknown match id
            ValueError: an internal command was submitted
        """
        if command.is_internal:
            raise ValueError(f"{command.command_type.value} is scheduled through run_timer")

        with self._lock_for(match_id):
            state = self.store.get(match_id)
            result = self.machine.apply(state, command)
            if result.success and result.new_state is not state:
                self.store.save(result.new_state, expected_version=state.version)
        return result

    def run_timer(self, match_id: str, command: Command, expected_version: int) -> TransitionResult | None:
        """
        Apply an internal timer command scheduled at expected_version.

        Returns None, without applying anything, when the match moved on
        since the timer was scheduled or is no longer in the phase the
        command belongs to.
        """
        required_phase = _TIMER_PHASES.get(command.command_type)
        if required_phase is None:
            raise ValueError(f"{command.command_type.value} is not a timer command")

        with self._lock_for(match_id):
            state = self.store.get(match_id)
            if state.version != expected_version or state.phase != required_phase:
                logger.debug(
                    "match %s: skipping stale %s (version %d, scheduled at %d)",
                    match_id, command.command_type.value, state.version, expected_version,
                )
                return None
            result = self.machine.apply(state, command)
            self.store.save(result.new_state, expected_version=state.version)
        return result

    def advance(self, match_id: str) -> TransitionResult | None:
        """Fire the current phase's timer command immediately (CLI and tests)."""
        state = self.store.get(match_id)
        command = timer_for(state)
        if command is None:
            return None
        return self.run_timer(match_id, command, state.version)

    def end_match(self, match_id: str, reason: str = "user_ended") -> bool:
        """End a match and release its lock."""
        try:
            lock = self._lock_for(match_id)
        except MatchNotFound:
            return False
        with lock:
            ended = self.store.delete(match_id, reason)
        self._locks.pop(match_id, None)
        return ended

    def list_matches(self) -> list[str]:
        """List active match ids."""
        return self.store.list_matches()
