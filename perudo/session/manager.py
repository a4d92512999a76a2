"""
Match Store - Keeps match snapshots per match id.

The state machine never touches storage; this store is the collaborator
that persists each accepted snapshot.

WRITE RULES:
- At most one writer per match: save() is a compare-and-swap on
  MatchState.version
- A stale writer gets VersionConflict and must re-read before retrying
- Snapshots are immutable, so readers never see a partial write

Storage is in-memory; matches are dropped when ended or stale.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
import logging
import threading
import time
import uuid

from ..engine_core.state import MatchState, MatchSettings, MatchPhase


logger = logging.getLogger(__name__)


class MatchNotFound(KeyError):
    """No match with this id."""

    def __init__(self, match_id: str):
        super().__init__(match_id)
        self.match_id = match_id

    def __str__(self):
        return f"Match {self.match_id} not found"


class VersionConflict(RuntimeError):
    """Another writer saved a newer snapshot first."""

    def __init__(self, match_id: str, expected: int, actual: int):
        super().__init__(
            f"Match {match_id}: expected version {expected}, store has {actual}"
        )
        self.match_id = match_id
        self.expected = expected
        self.actual = actual


class RecordState(Enum):
    """Lifecycle of a stored match."""
    OPEN = "open"  # Lobby
    ACTIVE = "active"  # Game in progress
    COMPLETED = "completed"


@dataclass
class MatchRecord:
    """A stored match: the latest snapshot plus bookkeeping."""
    match_id: str
    state: MatchState
    created_at: float
    updated_at: float
    record_state: RecordState = RecordState.OPEN

    def is_active(self) -> bool:
        return self.record_state in {RecordState.OPEN, RecordState.ACTIVE}


def _record_state_for(state: MatchState) -> RecordState:
    if state.phase == MatchPhase.LOBBY:
        return RecordState.OPEN
    if state.phase == MatchPhase.COMPLETED:
        return RecordState.COMPLETED
    return RecordState.ACTIVE


class MatchStore:
    """
    In-memory store of match snapshots.

    Responsibilities:
    - Create matches (lobbies)
    - Compare-and-swap saves on version
    - Track and clean up finished matches
    """

    def __init__(self):
        self._records: dict[str, MatchRecord] = {}
        self._guard = threading.Lock()

    def create(
        self,
        player_ids: list[str] | None = None,
        settings: MatchSettings | None = None,
        match_id: str | None = None,
    ) -> MatchState:
        """
        Create a new lobby.

        Args:
            player_ids: Initial roster in join order
            settings: Rule options (defaults if omitted)
            match_id: Explicit id, generated if omitted

        Returns:
            The initial MatchState (version 0)
        """
        match_id = match_id or str(uuid.uuid4())
        state = MatchState.create(match_id, player_ids or [], settings)
        now = time.time()
        with self._guard:
            if match_id in self._records:
                raise ValueError(f"Match {match_id} already exists")
            self._records[match_id] = MatchRecord(
                match_id=match_id,
                state=state,
                created_at=now,
                updated_at=now,
            )
        logger.info("created match %s", match_id)
        return state

    def get(self, match_id: str) -> MatchState:
        """Latest snapshot for a match."""
        record = self._records.get(match_id)
        if record is None:
            raise MatchNotFound(match_id)
        return record.state

    def get_record(self, match_id: str) -> MatchRecord | None:
        return self._records.get(match_id)

    def save(self, state: MatchState, expected_version: int) -> MatchState:
        """
        Store a new snapshot if nobody else wrote since expected_version.

        Raises:
            MatchNotFound: the match was deleted
            VersionConflict: the stored version is not expected_version
        """
        with self._guard:
            record = self._records.get(state.match_id)
            if record is None:
                raise MatchNotFound(state.match_id)
            if record.state.version != expected_version:
                raise VersionConflict(state.match_id, expected_version, record.state.version)
            record.state = state
            record.updated_at = time.time()
            record.record_state = _record_state_for(state)
        return state

    def delete(self, match_id: str, reason: str = "completed") -> bool:
        """Drop a match. Returns whether it existed."""
        with self._guard:
            record = self._records.pop(match_id, None)
        if record is None:
            return False
        logger.info("ended match %s (%s)", match_id, reason)
        return True

    def list_matches(self, active_only: bool = True) -> list[str]:
        """List match ids."""
        return [
            mid for mid, record in self._records.items()
            if record.is_active() or not active_only
        ]

    def cleanup_stale(self, max_age_seconds: int = 3600) -> list[str]:
        """
        Drop finished matches not updated for max_age_seconds.

        Called periodically to free memory.
        """
        current_time = time.time()
        stale = [
            mid for mid, record in self._records.items()
            if not record.is_active() and current_time - record.updated_at > max_age_seconds
        ]
        for match_id in stale:
            self.delete(match_id, reason="stale")
        return stale
