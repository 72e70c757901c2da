"""
Tests for the undo log.
"""

from ..engine_core.action import Action, ActionKind
from ..engine_core.reducer import apply_action
from ..engine_core.rounds import run_status_phase
from ..engine_core.state import UndoType
from ..engine_core.undo import push_undo
from .conftest import ScriptedRng, place, run_actions

UNDO_P1 = Action.create(ActionKind.UNDO, "p1")
UNDO_P2 = Action.create(ActionKind.UNDO, "p2")


class TestUndoMove:
    """Tests for undoing movement."""

    def _moved(self, match, data):
        place(match, "Darth Vader-2-0", "d4")
        return run_actions(
            data, match,
            Action.activate("p1", "Darth Vader-2"),
            Action.move("p1", "Darth Vader-2-0"),
            Action.move_commit("p1", "Darth Vader-2-0", 2, "d6"),
        )

    def test_undo_restores_position_and_mp(self, match, data):
        """The figure goes back and the MP bank is refilled."""
        game = self._moved(match, data)
        result = apply_action(data, game, UNDO_P1)

        assert result.success
        state = result.new_state
        assert state.position_of("Darth Vader-2-0") == "d4"
        assert state.move_in_progress["Darth Vader-2-0"].mp_remaining == 4
        assert state.undo_stack == []

    def test_only_mover_can_undo(self, match, data):
        game = self._moved(match, data)
        result = apply_action(data, game, UNDO_P2)

        assert not result.success
        assert result.error_code == "NOT_YOUR_TURN"

    def test_nothing_to_undo(self, match, data):
        result = apply_action(data, match, UNDO_P1)

        assert not result.success
        assert result.error == "Nothing to undo"


class TestUndoDeployment:
    """Tests for undoing deployment picks."""

    def _deploying(self, new_game, data):
        return run_actions(
            data, new_game,
            Action.select_squad("p1", "Imperials", ["Darth Vader"], ["Planning"], force=True),
            Action.select_squad("p2", "Rebels", ["Luke Skywalker"], ["Take Cover"], force=True),
            Action.create(ActionKind.SELECT_MAP_MISSION, "p1", map_id="training_grounds", variant="a"),
            Action.create(ActionKind.DETERMINE_INITIATIVE, "p1"),
            Action.create(ActionKind.CHOOSE_DEPLOYMENT_ZONE, "p1", zone="red"),
            Action.deploy("p1", "Darth Vader-2-0", "a2"),
            rng=ScriptedRng(["p1"]),
        )

    def test_undo_deploy_pick(self, new_game, data):
        game = self._deploying(new_game, data)
        assert game.position_of("Darth Vader-2-0") == "a2"

        game = run_actions(data, game, UNDO_P1)
        assert game.position_of("Darth Vader-2-0") is None

    def test_no_undo_after_mark_deployed(self, new_game, data):
        """Finished deployment is final."""
        game = self._deploying(new_game, data)
        game = run_actions(data, game, Action.create(ActionKind.MARK_DEPLOYED, "p1"))
        result = apply_action(data, game, UNDO_P1)

        assert not result.success
        assert "already finished" in result.error


class TestUndoTurnAndCards:
    """Tests for undoing passes, interacts and command cards."""

    def test_undo_pass(self, match, data):
        match.get_player("p1").activations_remaining = 1
        game = run_actions(data, match, Action.create(ActionKind.PASS_TURN, "p1"))
        assert game.current_activation_turn_player_id == "p2"

        game = run_actions(data, game, UNDO_P1)
        assert game.current_activation_turn_player_id == "p1"

    def test_undo_card_play(self, match, data):
        """A card play is undone by restoring the state from before it."""
        player = match.get_player("p1")
        player.hand = ["Planning"]
        player.deck = ["Focus", "Urgency", "Recovery"]
        game = run_actions(
            data, match,
            Action.activate("p1", "Darth Vader-2"),
            Action.play_command_card("p1", "Planning"),
        )
        assert game.get_player("p1").hand == ["Focus", "Urgency"]

        game = run_actions(data, game, UNDO_P1)
        player = game.get_player("p1")
        assert player.hand == ["Planning"]
        assert player.deck == ["Focus", "Urgency", "Recovery"]
        assert player.discard == []
        assert game.active_card_key == "Darth Vader-2"

    def test_undo_interact(self, match, data):
        """Undoing an interact restores the token and the action."""
        place(match, "Stormtrooper-1-0", "c5")
        game = run_actions(
            data, match,
            Action.activate("p1", "Stormtrooper-1"),
            Action.create(ActionKind.INTERACT, "p1", "Stormtrooper-1-0", option_id="launch_panel_d5_colored"),
        )
        assert game.launch_panel_state == {"d5": "colored"}
        assert game.card_actions["Stormtrooper-1"] == 1

        game = run_actions(data, game, UNDO_P1)
        assert game.launch_panel_state == {}
        assert game.card_actions["Stormtrooper-1"] == 2
        assert not game.get_player("p1").launch_panel_flipped_this_round

    def test_status_phase_clears_undo(self, match, data):
        push_undo(match, UndoType.PASS_TURN, "p1", {"previous_turn_player_id": "p1"})
        run_status_phase(match, data)
        assert match.undo_stack == []
