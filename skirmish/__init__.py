"""
Skirmish - Two-player tabletop skirmish engine

A deterministic rules engine for Imperial Assault skirmish matches.
The engine loads static rule data (cards, dice, maps, missions) and provides:
- Per-game state management
- Grid movement and line of sight
- Combat resolution
- Command card / ability resolution
- Round and phase flow with undo
"""

__version__ = "0.1.0"
