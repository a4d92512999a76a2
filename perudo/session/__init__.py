"""
Session Module - Stores match snapshots between commands.

A stored match represents one Perudo game:
- Created as a lobby when players gather
- Holds the latest MatchState snapshot
- Accepts a new snapshot only from the writer that read the latest one
- Dropped when the match ends

Storage is in-memory; any other backend must keep the same
compare-and-swap contract.
"""

from .manager import MatchStore, MatchRecord, RecordState, MatchNotFound, VersionConflict

__all__ = [
    "MatchStore",
    "MatchRecord",
    "RecordState",
    "MatchNotFound",
    "VersionConflict",
]
