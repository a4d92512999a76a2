"""
Tests for round resolution.
"""

import pytest

from ..engine_core.resolution import (
    die_matches, resolve, resolve_dudo, resolve_calza, apply_dice_delta,
)
from ..engine_core.state import Player, PlayerStatus, Wager


def seat(pid, dice, status=PlayerStatus.ALIVE):
    return Player(player_id=pid, dice_count=len(dice), current_dice=tuple(dice), status=status)


@pytest.fixture
def table():
    return {
        "p1": seat("p1", [3, 3, 1, 5, 6]),
        "p2": seat("p2", [2, 3, 4, 1, 6]),
    }


class TestDieMatches:

    def test_face_matches_itself(self):
        assert die_matches(4, 4, False)

    def test_aces_are_wild_outside_palifico(self):
        assert die_matches(1, 4, False)
        assert not die_matches(1, 4, True)

    def test_aces_bid_counts_only_aces(self):
        assert die_matches(1, 1, False)
        assert not die_matches(2, 1, False)


class TestResolve:
    """Tests for counting the table."""

    def test_wild_aces_counted(self, table):
        """Three 3s plus two aces make five."""
        outcome = resolve(Wager("p1", 4, 3), table, is_palifico=False)
        assert outcome.actual_count == 5
        assert outcome.per_value_totals == {1: 2, 2: 1, 3: 3, 4: 1, 5: 1, 6: 2}

    def test_palifico_has_no_wilds(self, table):
        outcome = resolve(Wager("p1", 4, 3), table, is_palifico=True)
        assert outcome.actual_count == 3

    def test_disconnected_dice_still_count(self, table):
        table["p2"] = table["p2"]._copy_with(status=PlayerStatus.DISCONNECTED)
        assert resolve(Wager("p1", 4, 3), table, False).actual_count == 5

    def test_ghost_and_dead_hold_no_dice(self, table):
        table["p3"] = seat("p3", [3, 3], status=PlayerStatus.GHOST)
        table["p4"] = seat("p4", [3], status=PlayerStatus.DEAD)
        assert resolve(Wager("p1", 4, 3), table, False).actual_count == 5


class TestDudo:

    def test_bid_held_challenger_loses(self, table):
        wager = Wager("p1", 4, 3)
        dudo = resolve_dudo(resolve(wager, table, False), wager, "p2")
        assert dudo.bid_held
        assert dudo.loser_id == "p2"
        assert dudo.winner_id == "p1"

    def test_exact_count_holds(self, table):
        wager = Wager("p1", 5, 3)
        assert resolve_dudo(resolve(wager, table, False), wager, "p2").bid_held

    def test_overbid_bidder_loses(self, table):
        wager = Wager("p1", 6, 3)
        dudo = resolve_dudo(resolve(wager, table, False), wager, "p2")
        assert not dudo.bid_held
        assert dudo.loser_id == "p1"


class TestCalza:

    def test_exact_gains_die(self, table):
        wager = Wager("p1", 5, 3)
        calza = resolve_calza(resolve(wager, table, False), wager, "p2")
        assert calza.success
        assert calza.dice_delta == 1

    def test_miss_loses_die(self, table):
        wager = Wager("p1", 4, 3)
        calza = resolve_calza(resolve(wager, table, False), wager, "p2")
        assert not calza.success
        assert calza.dice_delta == -1

    def test_own_wager_raises(self, table):
        wager = Wager("p1", 5, 3)
        with pytest.raises(ValueError):
            resolve_calza(resolve(wager, table, False), wager, "p1")


class TestDiceDelta:

    def test_normal_changes(self):
        assert apply_dice_delta(3, -1) == (2, False)
        assert apply_dice_delta(3, 1) == (4, False)

    def test_floor_at_zero(self):
        assert apply_dice_delta(0, -1) == (0, False)

    def test_cap_reports_overflow(self):
        assert apply_dice_delta(5, 1) == (6, False)
        assert apply_dice_delta(6, 1) == (6, True)
