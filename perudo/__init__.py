"""
Perudo - Liar's Dice Match Engine

A deterministic state machine for Perudo matches. The engine provides:
- Immutable match state snapshots
- Bid validation, including Palifico rounds
- Dudo and calza resolution
- Turn sequencing and round lifecycle
- A thin service/API layer for storage and real-time transport
"""

__version__ = "0.1.0"
