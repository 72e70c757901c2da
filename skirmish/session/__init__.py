"""
Session Module - Owns live games and their persistence.

One GameSession per game:
- Holds the canonical Game record
- Holds the game's seeded RNG and its lock
- Saves through the configured store after every successful action
"""

from .manager import SessionManager, GameSession
from .store import GameStore, InMemoryGameStore

__all__ = [
    "SessionManager",
    "GameSession",
    "GameStore",
    "InMemoryGameStore",
]
