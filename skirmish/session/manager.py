"""
Session Manager - The per-game arena.

LIFECYCLE:
1. A game is created -> a GameSession owns its Game, RNG and lock
2. Every action runs through the reducer under that game's lock
3. A successful action replaces the Game and the store is saved
4. Ended games stay readable until cleaned up

Sessions for different games share no mutable state. The shared pieces
are the registry of sessions and the store, each guarded by its own lock.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any
import logging
import random
import threading
import time
import uuid

from ..engine_core.action import Action, ActionResult
from ..engine_core.errors import DataIntegrityError
from ..engine_core.reducer import Reducer, DEFAULT_CONFIRM_TTL
from ..engine_core.state import Game
from .store import InMemoryGameStore

logger = logging.getLogger(__name__)


@dataclass
class GameSession:
    """
    One game in the arena.

    Contains:
    - The canonical Game record
    - The game's seeded RNG
    - The lock that serializes its mutations
    """
    game: Game
    rng: random.Random
    lock: threading.Lock = field(default_factory=threading.Lock)
    last_activity: float = field(default_factory=time.time)

    @property
    def game_id(self) -> str:
        return self.game.game_id

    @classmethod
    def from_game(cls, game: Game) -> GameSession:
        """Resume a stored game; the RNG is reseeded from the seed and the log length."""
        return cls(game=game, rng=random.Random(game.random_seed + len(game.action_log)))

    def is_active(self) -> bool:
        return not self.game.ended


class SessionManager:
    """
    Manages game sessions.

    Responsibilities:
    - Create games and their sessions
    - Apply actions under the per-game lock
    - Persist after every successful mutation
    - Clean up ended games
    """

    def __init__(
        self,
        data: Any,
        store: Any = None,
        confirm_ttl: float = DEFAULT_CONFIRM_TTL,
        clock: Any = time.time,
    ):
        self.data = data
        self.store = store if store is not None else InMemoryGameStore()
        self.confirm_ttl = confirm_ttl
        self.clock = clock
        self._sessions: dict[str, GameSession] = {}
        self._registry_lock = threading.Lock()
        self._persist_lock = threading.Lock()

    def load(self) -> int:
        """Load stored games into the arena. Returns the number loaded."""
        games = self.store.load_all_games()
        with self._registry_lock:
            for game_id, game in games.items():
                self._sessions[game_id] = GameSession.from_game(game)
        return len(games)

    def create_game(
        self,
        player1_id: str,
        player2_id: str,
        seed: int | None = None,
        game_id: str | None = None,
    ) -> GameSession:
        if player1_id == player2_id:
            raise ValueError("A game needs two different players")
        game_id = game_id or str(uuid.uuid4())
        if seed is None:
            seed = random.randrange(2 ** 31)
        game = Game.create(game_id, player1_id, player2_id, seed=seed)
        session = GameSession(game=game, rng=random.Random(seed))
        with self._registry_lock:
            if game_id in self._sessions:
                raise ValueError(f"Game {game_id} already exists")
            self._sessions[game_id] = session
        logger.info("Created game %s (%s vs %s)", game_id, player1_id, player2_id)
        self._persist()
        return session

    def get_session(self, game_id: str) -> GameSession | None:
        """Get a session by ID."""
        with self._registry_lock:
            return self._sessions.get(game_id)

    def require_session(self, game_id: str) -> GameSession:
        session = self.get_session(game_id)
        if session is None:
            raise DataIntegrityError(f"Game {game_id} not found", error_code="GAME_NOT_FOUND")
        return session

    def get_game(self, game_id: str) -> Game | None:
        session = self.get_session(game_id)
        return session.game if session else None

    def list_games(self) -> list[Game]:
        with self._registry_lock:
            return [s.game for s in self._sessions.values()]

    def apply(self, game_id: str, action: Action) -> ActionResult:
        """
        Apply an action to one game.

        The game is replaced only on success. A failed save is logged and
        reported, but the committed game stays in memory.
        """
        session = self.get_session(game_id)
        if session is None:
            return ActionResult.failure(f"Game {game_id} not found", error_code="GAME_NOT_FOUND")

        with session.lock:
            reducer = Reducer(
                data=self.data,
                rng=session.rng,
                confirm_ttl=self.confirm_ttl,
                clock=self.clock,
            )
            result = reducer.apply(session.game, action)
            if not result.success:
                return result
            session.game = result.new_state
            session.last_activity = self.clock()

        try:
            self._persist()
        except Exception:
            logger.exception("Failed to save games after %s on %s", action.kind.value, game_id)
            result.error = "Action applied but the game could not be saved"
            result.error_code = "PERSISTENCE_ERROR"
        return result

    def remove_game(self, game_id: str) -> bool:
        with self._registry_lock:
            removed = self._sessions.pop(game_id, None)
        if removed:
            self._persist()
        return removed is not None

    def list_active_games(self) -> list[str]:
        """List IDs of games still in progress."""
        with self._registry_lock:
            return [gid for gid, s in self._sessions.items() if s.is_active()]

    def cleanup_stale_sessions(self, max_age_seconds: int = 3600) -> list[str]:
        """
        Drop ended games idle for longer than max_age.

        Called periodically to free memory.
        """
        now = self.clock()
        with self._registry_lock:
            stale = [
                gid for gid, s in self._sessions.items()
                if not s.is_active() and now - s.last_activity > max_age_seconds
            ]
            for gid in stale:
                del self._sessions[gid]
        if stale:
            self._persist()
        return stale

    def _persist(self):
        # Snapshot and write together; saves land in order
        with self._persist_lock:
            with self._registry_lock:
                games = {gid: s.game for gid, s in self._sessions.items()}
            self.store.save_all_games(games)
