"""
Tests for the match store.
"""

import time

import pytest

from ..engine_core.state import MatchSettings, MatchPhase
from ..session import MatchStore, MatchNotFound, VersionConflict, RecordState


@pytest.fixture
def store():
    return MatchStore()


class TestMatchStore:
    """Tests for creating, saving and dropping matches."""

    def test_create_generates_id(self, store):
        state = store.create(["ana", "ben"])
        assert state.match_id
        assert state.version == 0
        assert store.get(state.match_id) is state
        assert store.get_record(state.match_id).record_state == RecordState.OPEN

    def test_create_with_settings_and_id(self, store):
        state = store.create(["ana"], MatchSettings(starting_dice=3), match_id="m1")
        assert state.match_id == "m1"
        assert state.players["ana"].dice_count == 3

    def test_duplicate_id_rejected(self, store):
        store.create([], match_id="m1")
        with pytest.raises(ValueError):
            store.create([], match_id="m1")

    def test_unknown_match(self, store):
        with pytest.raises(MatchNotFound) as exc_info:
            store.get("nope")
        assert str(exc_info.value) == "Match nope not found"

    def test_save_compare_and_swap(self, store):
        state = store.create(["ana", "ben"], match_id="m1")
        newer = state._copy_with(version=1, phase=MatchPhase.ROLLING)
        store.save(newer, expected_version=0)
        assert store.get("m1").version == 1
        assert store.get_record("m1").record_state == RecordState.ACTIVE

    def test_stale_save_conflicts(self, store):
        state = store.create(["ana", "ben"], match_id="m1")
        store.save(state._copy_with(version=1), expected_version=0)
        with pytest.raises(VersionConflict) as exc_info:
            store.save(state._copy_with(version=1), expected_version=0)
        assert exc_info.value.expected == 0
        assert exc_info.value.actual == 1

    def test_save_after_delete(self, store):
        state = store.create([], match_id="m1")
        store.delete("m1")
        with pytest.raises(MatchNotFound):
            store.save(state._copy_with(version=1), expected_version=0)

    def test_delete(self, store):
        store.create([], match_id="m1")
        assert store.delete("m1")
        assert not store.delete("m1")
        assert store.list_matches() == []

    def test_list_hides_completed(self, store):
        state = store.create(["ana", "ben"], match_id="done")
        store.create(["cal"], match_id="open")
        store.save(state._copy_with(version=1, phase=MatchPhase.COMPLETED), expected_version=0)
        assert store.list_matches() == ["open"]
        assert sorted(store.list_matches(active_only=False)) == ["done", "open"]

    def test_cleanup_stale(self, store):
        state = store.create(["ana", "ben"], match_id="done")
        store.create(["cal"], match_id="open")
        store.save(state._copy_with(version=1, phase=MatchPhase.COMPLETED), expected_version=0)
        store.get_record("done").updated_at = time.time() - 7200
        store.get_record("open").updated_at = time.time() - 7200

        assert store.cleanup_stale(max_age_seconds=3600) == ["done"]
        assert store.get_record("done") is None
        assert store.get_record("open") is not None
