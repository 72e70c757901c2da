"""
Tests for setup, deployment and the round loop.

Tests:
- Setup through actions (squads, map, initiative, zones)
- Deployment order and guards
- Activations, end_turn and pass_turn
- End of activation phase, end-of-round window and status phase
- Starting hand and kill_game
"""

from ..engine_core.action import Action, ActionKind
from ..engine_core.reducer import Reducer, apply_action
from ..engine_core.state import GamePhase
from .conftest import ScriptedRng, LEGAL_CC_LIST, place, run_actions as run


def play_out_round(data, game):
    """Each side activates both groups, then both end the activation phase."""
    return run(
        data, game,
        Action.activate("p1", "Stormtrooper-1"),
        Action.create(ActionKind.END_TURN, "p1"),
        Action.activate("p2", "Luke Skywalker-1"),
        Action.create(ActionKind.END_TURN, "p2"),
        Action.activate("p1", "Darth Vader-2"),
        Action.create(ActionKind.END_TURN, "p1"),
        Action.activate("p2", "Nexu-2"),
        Action.create(ActionKind.END_TURN, "p2"),
        Action.create(ActionKind.END_ACTIVATION_PHASE, "p1"),
        Action.create(ActionKind.END_ACTIVATION_PHASE, "p2"),
    )


class TestSetup:
    """Tests for the setup phase."""

    def _setup(self, data, game):
        return run(
            data, game,
            Action.select_squad("p1", "Imperials", ["Stormtrooper", "Darth Vader"], ["Planning"], force=True),
            Action.select_squad("p2", "Rebels", ["Luke Skywalker", "Nexu"], ["Take Cover"], force=True),
            Action.create(ActionKind.SELECT_MAP_MISSION, "p1", map_id="training_grounds", variant="b"),
            Action.create(ActionKind.DETERMINE_INITIATIVE, "p1"),
            rng=ScriptedRng(["p2"]),
        )

    def test_setup_flow(self, new_game, data):
        """Squads and map, then the seeded initiative roll."""
        game = self._setup(data, new_game)

        assert game.phase == GamePhase.INITIATIVE_DETERMINED
        assert game.initiative_player_id == "p2"
        assert game.selected_mission == "b"
        assert game.health["Stormtrooper-1"] == [[3, 3], [3, 3], [3, 3]]
        assert game.get_player("p1").deck == ["Planning"]

    def test_initiative_needs_squads(self, new_game, data):
        result = apply_action(data, new_game, Action.create(ActionKind.DETERMINE_INITIATIVE, "p1"))

        assert not result.success
        assert "squad" in result.error

    def test_zone_choice_sets_both_sides(self, new_game, data):
        """The initiative player picks; the other side gets the other zone."""
        game = self._setup(data, new_game)
        game = run(data, game, Action.create(ActionKind.CHOOSE_DEPLOYMENT_ZONE, "p2", zone="blue"))

        assert game.get_player("p2").deployment_zone == "blue"
        assert game.get_player("p1").deployment_zone == "red"
        assert game.phase == GamePhase.DEPLOYMENT_ZONE_CHOSEN

    def test_zone_choice_by_other_player(self, new_game, data):
        game = self._setup(data, new_game)
        result = apply_action(data, game, Action.create(ActionKind.CHOOSE_DEPLOYMENT_ZONE, "p1", zone="red"))

        assert not result.success
        assert result.error_code == "NOT_YOUR_TURN"

    def test_unknown_zone(self, new_game, data):
        game = self._setup(data, new_game)
        result = apply_action(data, game, Action.create(ActionKind.CHOOSE_DEPLOYMENT_ZONE, "p2", zone="green"))

        assert not result.success
        assert result.error_code == "INVALID_ACTION"

    def test_unknown_map(self, new_game, data):
        result = apply_action(
            data, new_game,
            Action.create(ActionKind.SELECT_MAP_MISSION, "p1", map_id="hoth", variant="a"),
        )

        assert not result.success
        assert result.error_code == "UNKNOWN_MAP"

    def test_unknown_mission_variant(self, new_game, data):
        result = apply_action(
            data, new_game,
            Action.create(ActionKind.SELECT_MAP_MISSION, "p1", map_id="training_grounds", variant="c"),
        )
        assert not result.success


class TestDeployment:
    """Tests for deployment order and placement."""

    def _ready_to_deploy(self, data, game):
        game = TestSetup()._setup(data, game)
        return run(data, game, Action.create(ActionKind.CHOOSE_DEPLOYMENT_ZONE, "p2", zone="blue"))

    def test_initiative_player_deploys_first(self, new_game, data):
        game = self._ready_to_deploy(data, new_game)
        result = apply_action(data, game, Action.deploy("p1", "Darth Vader-2-0", "a1"))

        assert not result.success
        assert result.error_code == "NOT_YOUR_TURN"

    def test_deploy_in_own_zone(self, new_game, data):
        game = self._ready_to_deploy(data, new_game)
        result = apply_action(data, game, Action.deploy("p2", "Luke Skywalker-1-0", "K9"))

        assert result.success
        assert result.new_state.position_of("Luke Skywalker-1-0") == "k9"
        assert result.new_state.phase == GamePhase.DEPLOYING

    def test_deploy_outside_zone(self, new_game, data):
        game = self._ready_to_deploy(data, new_game)
        result = apply_action(data, game, Action.deploy("p2", "Luke Skywalker-1-0", "a1"))

        assert not result.success
        assert "deployment zone" in result.error

    def test_deploy_on_occupied_space(self, new_game, data):
        game = self._ready_to_deploy(data, new_game)
        game = run(data, game, Action.deploy("p2", "Luke Skywalker-1-0", "k9"))
        result = apply_action(data, game, Action.deploy("p2", "Nexu-2-0", "k9"))

        assert not result.success

    def test_mark_deployed_needs_every_figure(self, new_game, data):
        game = self._ready_to_deploy(data, new_game)
        game = run(data, game, Action.deploy("p2", "Luke Skywalker-1-0", "k9"))
        result = apply_action(data, game, Action.create(ActionKind.MARK_DEPLOYED, "p2"))

        assert not result.success
        assert "Nexu-2-0" in result.error

    def test_round_one_starts_after_both_deploy(self, match):
        """start_match leaves the game in round 1 with p1 to act."""
        assert match.current_round == 1
        assert match.phase == GamePhase.ACTIVATION
        assert match.current_activation_turn_player_id == "p1"
        assert match.get_player("p1").activations_remaining == 2
        assert match.get_player("p2").activations_total == 2

    def test_second_mark_deployed_rejected(self, match, data):
        """Finishing deployment twice is an error, not a no-op."""
        result = apply_action(data, match, Action.create(ActionKind.MARK_DEPLOYED, "p1"))

        assert not result.success
        assert "already finished deploying" in result.error


class TestActivations:
    """Tests for activations and turn passing."""

    def test_activate_spends_an_activation(self, match, data):
        result = apply_action(data, match, Action.activate("p1", "Stormtrooper-1"))

        assert result.success
        assert result.data["actions"] == 2
        assert result.new_state.get_player("p1").activations_remaining == 1
        assert result.new_state.activated_cards == ["Stormtrooper-1"]

    def test_activate_out_of_turn(self, match, data):
        result = apply_action(data, match, Action.activate("p2", "Luke Skywalker-1"))

        assert not result.success
        assert result.error_code == "NOT_YOUR_TURN"

    def test_activate_opponent_card(self, match, data):
        result = apply_action(data, match, Action.activate("p1", "Luke Skywalker-1"))

        assert not result.success
        assert "not one of your deployment cards" in result.error

    def test_finish_activation_before_next(self, match, data):
        game = run(data, match, Action.activate("p1", "Stormtrooper-1"))
        result = apply_action(data, game, Action.activate("p1", "Darth Vader-2"))

        assert not result.success
        assert "Finish the activation" in result.error

    def test_card_activates_once_per_round(self, match, data):
        match.get_player("p2").activations_remaining = 0
        game = run(
            data, match,
            Action.activate("p1", "Stormtrooper-1"),
            Action.create(ActionKind.END_TURN, "p1"),
        )
        result = apply_action(data, game, Action.activate("p1", "Stormtrooper-1"))

        assert not result.success
        assert "already activated" in result.error

    def test_end_turn_passes_to_opponent(self, match, data):
        game = run(data, match, Action.activate("p1", "Stormtrooper-1"))
        result = apply_action(data, game, Action.create(ActionKind.END_TURN, "p1"))

        assert result.success
        assert result.new_state.current_activation_turn_player_id == "p2"
        assert result.new_state.card_actions["Stormtrooper-1"] == 0

    def test_end_turn_keeps_turn_when_opponent_is_done(self, match, data):
        """With no opponent activations left the same player continues."""
        match.get_player("p2").activations_remaining = 0
        game = run(data, match, Action.activate("p1", "Stormtrooper-1"))
        result = apply_action(data, game, Action.create(ActionKind.END_TURN, "p1"))

        assert result.success
        assert result.new_state.current_activation_turn_player_id == "p1"

    def test_pass_needs_opponent_ahead(self, match, data):
        """Passing with equal activations is rejected."""
        result = apply_action(data, match, Action.create(ActionKind.PASS_TURN, "p1"))

        assert not result.success
        assert "more activations" in result.error

    def test_pass_when_opponent_ahead(self, match, data):
        match.get_player("p1").activations_remaining = 1
        result = apply_action(data, match, Action.create(ActionKind.PASS_TURN, "p1"))

        assert result.success
        assert result.new_state.current_activation_turn_player_id == "p2"


class TestEndOfRound:
    """Tests for the end of the activation phase and the status phase."""

    def test_cannot_end_with_activations_left(self, match, data):
        result = apply_action(data, match, Action.create(ActionKind.END_ACTIVATION_PHASE, "p1"))

        assert not result.success
        assert "p1 has 2 activation(s) remaining" in result.error

    def test_both_players_must_signal(self, match, data):
        game = play_out_round(data, match)

        assert game.phase == GamePhase.STATUS
        assert game.end_of_round_whose_turn == "p1"
        assert all(p.end_activation_signalled for p in game.players)

    def test_one_signal_keeps_phase_open(self, match, data):
        match.get_player("p1").activations_remaining = 0
        match.get_player("p2").activations_remaining = 0
        result = apply_action(data, match, Action.create(ActionKind.END_ACTIVATION_PHASE, "p2"))

        assert result.success
        assert result.new_state.phase == GamePhase.ACTIVATION

    def test_signal_only_once(self, match, data):
        match.get_player("p1").activations_remaining = 0
        match.get_player("p2").activations_remaining = 0
        game = run(data, match, Action.create(ActionKind.END_ACTIVATION_PHASE, "p1"))
        result = apply_action(data, game, Action.create(ActionKind.END_ACTIVATION_PHASE, "p1"))

        assert not result.success
        assert game.phase == GamePhase.ACTIVATION

    def test_end_of_round_window_order(self, match, data):
        """Initiative player's window first; the other player cannot close it."""
        game = play_out_round(data, match)
        result = apply_action(data, game, Action.create(ActionKind.END_END_OF_ROUND_WINDOW, "p2"))

        assert not result.success
        assert result.error_code == "NOT_YOUR_TURN"

        game = run(data, game, Action.create(ActionKind.END_END_OF_ROUND_WINDOW, "p1"))
        assert game.end_of_round_whose_turn == "p2"

    def test_status_phase_starts_next_round(self, match, data):
        """Draw one card each, pass initiative, ready every card."""
        game = play_out_round(data, match)
        game = run(
            data, game,
            Action.create(ActionKind.END_END_OF_ROUND_WINDOW, "p1"),
            Action.create(ActionKind.END_END_OF_ROUND_WINDOW, "p2"),
        )

        assert game.current_round == 2
        assert game.phase == GamePhase.ACTIVATION
        assert game.initiative_player_id == "p2"
        assert game.current_activation_turn_player_id == "p2"
        assert game.activated_cards == []
        assert game.get_player("p1").hand == ["Planning"]
        assert game.get_player("p2").hand == ["Take Cover"]
        assert game.get_player("p1").activations_remaining == 2

    def test_terminals_add_draws(self, match, data):
        """Each controlled terminal draws one more card."""
        place(match, "Stormtrooper-1-0", "c7")
        game = play_out_round(data, match)
        game = run(
            data, game,
            Action.create(ActionKind.END_END_OF_ROUND_WINDOW, "p1"),
            Action.create(ActionKind.END_END_OF_ROUND_WINDOW, "p2"),
        )

        assert game.get_player("p1").hand == ["Planning", "Focus"]

    def test_skipped_draw(self, match, data):
        match.get_player("p2").no_draw_next_status = True
        game = play_out_round(data, match)
        game = run(
            data, game,
            Action.create(ActionKind.END_END_OF_ROUND_WINDOW, "p1"),
            Action.create(ActionKind.END_END_OF_ROUND_WINDOW, "p2"),
        )

        p2 = game.get_player("p2")
        assert p2.hand == []
        assert not p2.no_draw_next_status


class TestHandsAndEnding:
    """Tests for the opening hand and ending a game."""

    def test_starting_hand(self, match, data):
        match.get_player("p1").deck = list(LEGAL_CC_LIST)
        reducer = Reducer(data, rng=ScriptedRng())
        result = reducer.apply(match, Action.create(ActionKind.DRAW_STARTING_HAND, "p1"))

        assert result.success
        assert result.data["drawn"] == LEGAL_CC_LIST[:3]
        assert len(result.new_state.get_player("p1").deck) == 12

        again = reducer.apply(result.new_state, Action.create(ActionKind.DRAW_STARTING_HAND, "p1"))
        assert not again.success
        assert "already drawn" in again.error

    def test_kill_game(self, match, data):
        result = apply_action(data, match, Action.create(ActionKind.KILL_GAME, "p2"))

        assert result.success
        assert result.new_state.ended
        assert result.new_state.end_reason == "killed"
        assert result.new_state.winner_id is None
        assert result.new_state.phase == GamePhase.ENDED

    def test_no_actions_after_end(self, match, data):
        game = run(data, match, Action.create(ActionKind.KILL_GAME, "p2"))
        result = apply_action(data, game, Action.activate("p1", "Stormtrooper-1"))

        assert not result.success
        assert result.error_code == "INVALID_ACTION"
