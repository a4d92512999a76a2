"""
Tests for bot policies.
"""

import random

import pytest

from ..bots import ExpectationPolicy
from ..engine_core.command import CommandType
from ..engine_core.state import MatchPhase, Wager
from .conftest import build_state


def facing(wager, p2_dice, **kwargs):
    """p2 to act against a wager from p1."""
    return build_state(
        {"p1": [5, 5, 6, 6, 2], "p2": p2_dice},
        phase=MatchPhase.BIDDING,
        current="p2",
        current_wager=wager,
        **kwargs,
    )


class TestExpectationPolicy:
    """Tests for the expected-count bot."""

    def test_expected_count_uses_wild_aces(self):
        state = facing(Wager("p1", 2, 4), [4, 4, 4, 1, 2])
        policy = ExpectationPolicy(rng=random.Random(0))
        assert policy.expected_count(state, "p2", 4) == pytest.approx(4 + 5 / 3)
        assert policy.expected_count(state, "p2", 1) == pytest.approx(1 + 5 / 6)

    def test_opening_bid_on_strongest_face(self):
        state = build_state({"p1": [3, 3, 3, 3, 3], "p2": [2, 2, 4, 5, 6]})
        decision = ExpectationPolicy(rng=random.Random(0)).select_command(state, "p1")
        assert decision.command.command_type == CommandType.BID
        assert (decision.command.count, decision.command.value) == (5, 3)

    def test_doubts_a_high_wager(self):
        state = facing(Wager("p1", 9, 6), [2, 2, 2, 2, 2])
        decision = ExpectationPolicy(rng=random.Random(0)).select_command(state, "p2")
        assert decision.command.command_type == CommandType.DUDO

    def test_calls_calza_near_expectation(self):
        state = facing(Wager("p1", 5, 4), [4, 4, 4, 1, 2])
        decision = ExpectationPolicy(rng=random.Random(0), calza_margin=1.0).select_command(state, "p2")
        assert decision.command.command_type == CommandType.CALZA

    def test_raises_with_most_slack(self):
        state = facing(Wager("p1", 2, 3), [4, 4, 4, 1, 2])
        decision = ExpectationPolicy(rng=random.Random(0)).select_command(state, "p2")
        assert decision.command.command_type == CommandType.BID
        assert (decision.command.count, decision.command.value) == (2, 4)

    def test_palifico_raise_keeps_value(self):
        state = build_state(
            {"p1": [5, 5], "p2": [3, 2, 2]},
            phase=MatchPhase.BIDDING,
            current="p2",
            current_wager=Wager("p1", 1, 3),
            is_palifico=True,
            palifico_value_lock=3,
        )
        decision = ExpectationPolicy(rng=random.Random(0)).select_command(state, "p2")
        assert decision.command.command_type == CommandType.BID
        assert (decision.command.count, decision.command.value) == (2, 3)
