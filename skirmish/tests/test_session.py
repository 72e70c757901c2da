"""
Tests for game sessions and persistence.
"""

import json
import threading

import pytest

from ..engine_core.action import Action, ActionKind
from ..engine_core.state import GamePhase
from ..session import GameStore, InMemoryGameStore, SessionManager
from .conftest import FlakyStore


def select_squad(player_id):
    return Action.select_squad(player_id, "Squad", ["Darth Vader"], ["Planning"], force=True)


class StallingStore(InMemoryGameStore):
    """In-memory store whose next write waits until released."""

    def __init__(self):
        super().__init__()
        self.armed = False
        self.entered = threading.Event()
        self.release = threading.Event()

    def save_all_games(self, games):
        if self.armed:
            self.armed = False
            self.entered.set()
            self.release.wait(timeout=5)
        super().save_all_games(games)


class TestGameStore:
    """Tests for the JSON file store."""

    def test_save_and_load(self, tmp_path, match):
        store = GameStore(tmp_path / "games.json")
        store.save_all_games({match.game_id: match})

        loaded = GameStore(tmp_path / "games.json").load_all_games()
        game = loaded["g1"]
        assert game.phase == GamePhase.ACTIVATION
        assert game.current_round == 1
        assert game.position_of("Darth Vader-2-0") == "a2"
        assert game.to_dict() == match.to_dict()

    def test_document_format(self, tmp_path, new_game):
        path = tmp_path / "games.json"
        GameStore(path).save_all_games({new_game.game_id: new_game})

        document = json.loads(path.read_text(encoding="utf-8"))
        assert document["version"] == 1
        assert list(document["games"]) == ["g1"]

    def test_missing_file_loads_nothing(self, tmp_path):
        assert GameStore(tmp_path / "missing.json").load_all_games() == {}

    def test_unchanged_content_is_not_rewritten(self, tmp_path, new_game):
        path = tmp_path / "games.json"
        store = GameStore(path)
        store.save_all_games({new_game.game_id: new_game})
        path.write_text("{}", encoding="utf-8")

        store.save_all_games({new_game.game_id: new_game})
        assert path.read_text(encoding="utf-8") == "{}"

    def test_no_temp_files_left(self, tmp_path, new_game):
        store = GameStore(tmp_path / "games.json")
        store.save_all_games({new_game.game_id: new_game})
        assert [p.name for p in tmp_path.iterdir()] == ["games.json"]


class TestInMemoryGameStore:
    """Tests for the in-memory store."""

    def test_round_trip(self, match):
        store = InMemoryGameStore()
        store.save_all_games({match.game_id: match})
        assert store.load_all_games()["g1"].to_dict() == match.to_dict()

    def test_unchanged_games_skip_write(self, new_game):
        store = InMemoryGameStore()
        store.save_all_games({new_game.game_id: new_game})
        store.save_all_games({new_game.game_id: new_game})
        assert store.write_count == 1


class TestSessionManager:
    """Tests for the per-game arena."""

    def test_create_game(self, data):
        manager = SessionManager(data)
        session = manager.create_game("p1", "p2", seed=3, game_id="g1")

        assert session.game_id == "g1"
        assert manager.get_game("g1").random_seed == 3
        assert manager.list_active_games() == ["g1"]
        assert manager.store.write_count == 1

    def test_create_needs_two_players(self, data):
        with pytest.raises(ValueError):
            SessionManager(data).create_game("p1", "p1")

    def test_duplicate_game_id(self, data):
        manager = SessionManager(data)
        manager.create_game("p1", "p2", game_id="g1")
        with pytest.raises(ValueError):
            manager.create_game("p3", "p4", game_id="g1")

    def test_apply_replaces_game_and_saves(self, data):
        manager = SessionManager(data)
        manager.create_game("p1", "p2", game_id="g1")
        result = manager.apply("g1", select_squad("p1"))

        assert result.success
        assert manager.get_game("g1").get_player("p1").squad_confirmed
        assert manager.store.write_count == 2

    def test_failed_action_keeps_game(self, data):
        manager = SessionManager(data)
        manager.create_game("p1", "p2", game_id="g1")
        before = manager.get_game("g1")
        result = manager.apply("g1", Action.create(ActionKind.DETERMINE_INITIATIVE, "p1"))

        assert not result.success
        assert manager.get_game("g1") is before
        assert manager.store.write_count == 1

    def test_unknown_game(self, data):
        result = SessionManager(data).apply("nope", select_squad("p1"))

        assert not result.success
        assert result.error_code == "GAME_NOT_FOUND"

    def test_save_failure_keeps_commit(self, data):
        """A failed save is reported, but the action stays applied."""
        store = FlakyStore()
        manager = SessionManager(data, store=store)
        manager.create_game("p1", "p2", game_id="g1")
        store.fail = True

        result = manager.apply("g1", select_squad("p1"))
        assert result.success
        assert result.error_code == "PERSISTENCE_ERROR"
        assert manager.get_game("g1").get_player("p1").squad_confirmed

    def test_load_resumes_games(self, data, tmp_path):
        path = tmp_path / "games.json"
        manager = SessionManager(data, store=GameStore(path))
        manager.create_game("p1", "p2", seed=5, game_id="g1")
        manager.apply("g1", select_squad("p1"))

        resumed = SessionManager(data, store=GameStore(path))
        assert resumed.load() == 1
        assert resumed.get_game("g1").get_player("p1").squad.dc_list == ["Darth Vader"]

    def test_cleanup_stale_sessions(self, data):
        now = [100.0]
        manager = SessionManager(data, clock=lambda: now[0])
        manager.create_game("p1", "p2", game_id="g1")
        manager.create_game("p1", "p2", game_id="g2")
        manager.apply("g1", Action.create(ActionKind.KILL_GAME, "p1"))

        now[0] += 7200
        assert manager.cleanup_stale_sessions(max_age_seconds=3600) == ["g1"]
        assert manager.get_session("g1") is None
        assert manager.list_active_games() == ["g2"]

    def test_remove_game(self, data):
        manager = SessionManager(data)
        manager.create_game("p1", "p2", game_id="g1")
        assert manager.remove_game("g1")
        assert not manager.remove_game("g1")

    def test_concurrent_saves_keep_latest_state(self, data):
        """A save stalled for one game cannot overwrite a later save of another."""
        store = StallingStore()
        manager = SessionManager(data, store=store)
        manager.create_game("p1", "p2", game_id="g1")
        manager.create_game("p3", "p4", game_id="g2")
        store.armed = True

        first = threading.Thread(target=manager.apply, args=("g1", select_squad("p1")))
        first.start()
        assert store.entered.wait(timeout=5)
        second = threading.Thread(target=manager.apply, args=("g2", select_squad("p3")))
        second.start()
        second.join(timeout=0.2)
        store.release.set()
        first.join(timeout=5)
        second.join(timeout=5)

        saved = store.load_all_games()
        assert manager.get_game("g2").get_player("p3").squad_confirmed
        assert saved["g1"].get_player("p1").squad_confirmed
        assert saved["g2"].get_player("p3").squad_confirmed
