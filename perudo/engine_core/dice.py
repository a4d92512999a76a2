"""
Dice Engine - Rolls dice for players.

The only source of randomness in the engine. Tests inject a seeded
random.Random (or any object with randint) for deterministic rolls.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import random

from .state import MIN_FACE, MAX_FACE


@dataclass
class DiceEngine:
    """Rolls six-sided dice from an injectable random source."""
    rng: random.Random = field(default_factory=random.Random)

    @classmethod
    def seeded(cls, seed: int) -> DiceEngine:
        """Factory for a deterministic engine."""
        return cls(rng=random.Random(seed))

    def roll(self, count: int) -> tuple[int, ...]:
        """Roll `count` independent dice, each uniform in 1..6."""
        if count < 0:
            raise ValueError("cannot roll a negative number of dice")
        return tuple(self.rng.randint(MIN_FACE, MAX_FACE) for _ in range(count))


class ScriptedDice(DiceEngine):
    """
    Dice engine that hands out pre-set rolls.

    Rolls are consumed in order; each must match the requested count.
    Useful for scenario tests and replays.
    """

    def __init__(self, rolls: list[list[int] | tuple[int, ...]]):
        super().__init__(rng=random.Random(0))
        self._rolls = [tuple(r) for r in rolls]

    @property
    def remaining(self) -> int:
        return len(self._rolls)

    def roll(self, count: int) -> tuple[int, ...]:
        if not self._rolls:
            raise ValueError("no scripted rolls left")
        dice = self._rolls.pop(0)
        if len(dice) != count:
            raise ValueError(f"scripted roll has {len(dice)} dice, expected {count}")
        return dice
