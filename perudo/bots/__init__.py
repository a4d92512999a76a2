"""
Bots module - Computer players.

Provides:
- BotPolicy: Interface for bot decision-making
- ExpectationPolicy: Bids and doubts on expected dice counts
"""

from .policy import BotPolicy, BotDecision, ExpectationPolicy

__all__ = [
    "BotPolicy",
    "BotDecision",
    "ExpectationPolicy",
]
