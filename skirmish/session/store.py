"""
Game Store - Persistence for all live games.

The store:
- Keeps every game in one JSON document
- Writes atomically (temp file, then os.replace)
- Skips the write when the content is unchanged
- Serializes writers with a store-level lock

InMemoryGameStore has the same interface and is used by tests and by
deployments that do not configure a store path.
"""

from __future__ import annotations
import hashlib
import json
import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Any

from ..engine_core.state import Game

logger = logging.getLogger(__name__)

STORE_FORMAT_VERSION = 1


class GameStore:
    """
    File-based store for games.

    Usage:
        store = GameStore("~/.skirmish/games.json")
        games = store.load_all_games()
        ...
        store.save_all_games(games)
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()
        self._last_hash: str | None = None

    def load_all_games(self) -> dict[str, Game]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            raw = json.load(fh)
        games = {}
        for game_id, game_raw in raw.get("games", {}).items():
            games[game_id] = Game.from_dict(game_raw)
        logger.info("Loaded %d game(s) from %s", len(games), self.path)
        return games

    def save_all_games(self, games: dict[str, Game]):
        """Write every game. No-op when nothing changed since the last write."""
        document = {
            "version": STORE_FORMAT_VERSION,
            "games": {game_id: game.to_dict() for game_id, game in games.items()},
        }
        content = json.dumps(document, sort_keys=True, indent=2)
        content_hash = self._hash(content)
        with self._lock:
            if content_hash == self._last_hash:
                return
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(f"{self.path.name}.{uuid.uuid4().hex[:8]}.tmp")
            try:
                with tmp_path.open("w", encoding="utf-8") as fh:
                    fh.write(content)
                os.replace(tmp_path, self.path)
            finally:
                tmp_path.unlink(missing_ok=True)
            self._last_hash = content_hash
        logger.debug("Saved %d game(s) to %s", len(games), self.path)

    def _hash(self, content: str) -> str:
        return hashlib.sha256(content.encode("utf-8")).hexdigest()


class InMemoryGameStore:
    """Store that keeps serialized copies in memory."""

    def __init__(self):
        self._lock = threading.Lock()
        self._documents: dict[str, dict[str, Any]] = {}
        self.write_count = 0

    def load_all_games(self) -> dict[str, Game]:
        with self._lock:
            return {game_id: Game.from_dict(raw) for game_id, raw in self._documents.items()}

    def save_all_games(self, games: dict[str, Game]):
        documents = {game_id: game.to_dict() for game_id, game in games.items()}
        with self._lock:
            if documents == self._documents:
                return
            self._documents = documents
            self.write_count += 1
