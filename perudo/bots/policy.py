"""
Bot Policy - Interface for bot decision-making.

A BotPolicy looks at the match from one seat and returns a command.
Bots only read their own dice; everything else comes from public state.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Any
import random

from ..engine_core.bidding import validate_bid
from ..engine_core.command import Command
from ..engine_core.state import MatchState, Wager, MIN_FACE, MAX_FACE


@dataclass
class BotDecision:
    """
    A decision made by a bot.

    Contains:
    - The command to submit
    - Explanation (for logs)
    - Evaluation details (for debugging)
    """
    command: Command
    explanation: str = ""
    confidence: float = 1.0
    evaluation_details: dict[str, Any] = field(default_factory=dict)


class BotPolicy(ABC):
    """
    Abstract base class for bot policies.

    A policy defines how a bot picks its command when it holds the turn.
    """

    @abstractmethod
    def select_command(self, state: MatchState, player_id: str) -> BotDecision:
        """
        Select a command for player_id.

        Args:
            state: Current match state (bots must only read their own dice)
            player_id: The seat the bot plays

        Returns:
            BotDecision with the command to submit
        """

    def get_name(self) -> str:
        """Get the bot's name/identifier."""
        return self.__class__.__name__


class ExpectationPolicy(BotPolicy):
    """
    Plays on expected counts.

    Each unseen die shows a face with probability 1/6, or 1/3 when aces
    are wild for that face. The bot doubts a wager that exceeds its
    expectation by more than doubt_margin, calls calza when the wager is
    within calza_margin of it, and otherwise makes the raise that leaves
    the most slack.
    """

    def __init__(self, rng: random.Random | None = None, doubt_margin: float = 1.0,
                 calza_margin: float = 0.25):
        self.rng = rng or random.Random()
        self.doubt_margin = doubt_margin
        self.calza_margin = calza_margin

    def expected_count(self, state: MatchState, player_id: str, value: int) -> float:
        """Own matching dice plus the expected matches among unseen dice."""
        own = state.players[player_id].current_dice
        wild = not state.is_palifico and value != 1
        known = sum(1 for d in own if d == value or (wild and d == 1))
        unseen = state.total_dice_on_table() - len(own)
        p = 1 / 3 if wild else 1 / 6
        return known + unseen * p

    def select_command(self, state: MatchState, player_id: str) -> BotDecision:
        wager = state.current_wager
        if wager is None:
            return self._opening_bid(state, player_id)

        expected = self.expected_count(state, player_id, wager.value)
        details = {"expected": round(expected, 2), "claimed": wager.count}

        if wager.player_id != player_id and abs(expected - wager.count) <= self.calza_margin:
            return BotDecision(Command.calza(player_id), "wager looks exact", 0.5, details)

        if wager.count > expected + self.doubt_margin:
            return BotDecision(Command.dudo(player_id), "wager looks too high", 0.7, details)

        raise_bid = self._best_raise(state, player_id, wager)
        if raise_bid is None:
            return BotDecision(Command.dudo(player_id), "no raise left", 1.0, details)
        return BotDecision(
            Command.bid(player_id, raise_bid.count, raise_bid.value),
            f"raising to {raise_bid.count}x{raise_bid.value}",
            0.6,
            details,
        )

    def _opening_bid(self, state: MatchState, player_id: str) -> BotDecision:
        own = state.players[player_id].current_dice
        faces = Counter(d for d in own if state.is_palifico or d != 1)
        if faces:
            top = max(faces.values())
            value = self.rng.choice(sorted(f for f, n in faces.items() if n == top))
        else:
            value = self.rng.randint(2, MAX_FACE)
        expected = self.expected_count(state, player_id, value)
        count = max(1, min(int(expected) - 1, state.total_dice_on_table()))
        return BotDecision(
            Command.bid(player_id, count, value),
            f"opening with {count}x{value}",
            0.6,
            {"expected": round(expected, 2)},
        )

    def _best_raise(self, state: MatchState, player_id: str, wager: Wager) -> Wager | None:
        total = state.total_dice_on_table()
        candidates = [Wager(player_id, wager.count + 1, value) for value in range(MIN_FACE, MAX_FACE + 1)]
        candidates += [Wager(player_id, wager.count, value) for value in range(wager.value + 1, MAX_FACE + 1)]

        best = None
        best_slack = None
        for candidate in candidates:
            verdict = validate_bid(wager, candidate, state.is_palifico, state.palifico_value_lock, total)
            if not verdict.ok:
                continue
            slack = self.expected_count(state, player_id, candidate.value) - candidate.count
            if best_slack is None or slack > best_slack:
                best, best_slack = candidate, slack
        return best
