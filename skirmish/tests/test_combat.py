"""
Tests for combat resolution.

Tests:
- Damage arithmetic (block, pierce, evade, dodge, accuracy)
- Surge parsing and spending
- Defeat, VP and freed activations
- The attack flow through the reducer
"""

import pytest

from ..engine_core.action import Action, ActionKind
from ..engine_core.combat import (
    apply_damage,
    check_win_conditions,
    compute_combat_result,
    enter_surge_phase,
    parse_surge_effect,
    resolve_combat,
    spend_surge,
)
from ..engine_core.errors import ValidationError
from ..engine_core.reducer import apply_action
from ..engine_core.state import CombatStage, GamePhase, PendingCombat
from .conftest import ScriptedRng, place


def make_combat(attack_faces, defense_faces, **kwargs):
    kwargs.setdefault("attack_type", "melee")
    kwargs.setdefault("distance", 1)
    return PendingCombat(
        attacker_player_id="p1",
        defender_player_id="p2",
        attacker_figure_key="Darth Vader-2-0",
        target_figure_key="Luke Skywalker-1-0",
        attack_faces=attack_faces,
        defense_faces=defense_faces,
        **kwargs,
    )


def attack_face(acc=0, dmg=0, surge=0):
    return {"acc": acc, "dmg": dmg, "surge": surge}


def defense_face(block=0, evade=0, dodge=0):
    return {"block": block, "evade": evade, "dodge": dodge}


class TestCombatResult:
    """Tests for the pure damage computation."""

    def test_block_reduces_damage(self):
        """3 damage and 1 surge against 1 block deals 2 damage."""
        combat = make_combat([attack_face(dmg=3, surge=1)], [defense_face(block=1)])
        result = compute_combat_result(combat)

        assert result.hit
        assert result.damage == 2

    def test_dodge_misses(self):
        """A dodge cancels the whole attack."""
        combat = make_combat([attack_face(dmg=5)], [defense_face(dodge=1)])
        result = compute_combat_result(combat)

        assert not result.hit
        assert result.damage == 0
        assert "dodge" in result.result_text

    def test_ranged_needs_accuracy(self):
        """Ranged attacks miss when accuracy is below the distance."""
        combat = make_combat([attack_face(acc=3, dmg=4)], [], attack_type="ranged", distance=5)
        result = compute_combat_result(combat)

        assert not result.hit
        assert "insufficient accuracy" in result.result_text

    def test_pierce_ignores_block(self):
        combat = make_combat([attack_face(dmg=2)], [defense_face(block=2)], bonus_pierce=2)
        assert compute_combat_result(combat).damage == 2

    def test_block_never_goes_negative(self):
        combat = make_combat([attack_face(dmg=1)], [defense_face(block=1)], surge_pierce=3)
        assert compute_combat_result(combat).effective_block == 0

    def test_damage_cap(self):
        """A damage cap limits damage to the defender."""
        combat = make_combat([attack_face(dmg=6)], [], max_damage_to_defender=2)
        assert compute_combat_result(combat).damage == 2


class TestSurge:
    """Tests for surge parsing and spending."""

    def test_parse_compound_surge(self):
        effect = parse_surge_effect("+1 Hit, Stun")
        assert effect.damage == 1
        assert effect.conditions == ["Stun"]

    def test_parse_numeric_surges(self):
        assert parse_surge_effect("pierce 2").pierce == 2
        assert parse_surge_effect("cleave 2").cleave == 2
        assert parse_surge_effect("nonsense").damage == 0

    def test_evade_cancels_surge(self):
        """Each evade cancels one surge."""
        combat = make_combat([attack_face(surge=2)], [defense_face(evade=1)])
        enter_surge_phase(combat)

        assert combat.evade_cancelled_surge == 1
        assert combat.surge_remaining == 1
        assert combat.stage == CombatStage.SURGE_SPEND

    def test_dodge_zeroes_surge(self):
        combat = make_combat([attack_face(surge=2)], [defense_face(dodge=1)])
        enter_surge_phase(combat)

        assert combat.surge_remaining == 0
        assert combat.stage == CombatStage.READY_TO_RESOLVE

    def test_each_ability_once(self, data):
        """A surge ability can be used once per attack."""
        combat = make_combat([attack_face(surge=2)], [])
        enter_surge_phase(combat)
        spend_surge(combat, data, "damage 2")

        with pytest.raises(ValidationError):
            spend_surge(combat, data, "damage 2")

    def test_spent_surge_adds_damage(self, data):
        combat = make_combat([attack_face(dmg=3, surge=1)], [defense_face(block=1)])
        enter_surge_phase(combat)
        spend_surge(combat, data, "damage 2")

        assert combat.stage == CombatStage.READY_TO_RESOLVE
        assert compute_combat_result(combat).damage == 4

    def test_unknown_ability_rejected(self, data):
        combat = make_combat([attack_face(surge=1)], [])
        enter_surge_phase(combat)

        with pytest.raises(ValidationError):
            spend_surge(combat, data, "blast 2")


class TestDefeat:
    """Tests for defeat, kill VP and freed activations."""

    def test_partial_group_scores_nothing(self, match, data):
        """Defeating one of two figures gives no VP and keeps the activation."""
        apply_damage(match, data, "Nexu-2-0", 5)

        assert match.position_of("Nexu-2-0") is None
        assert match.get_player("p1").vp.total == 0
        assert match.get_player("p2").activations_remaining == 2

    def test_whole_group_scores_sub_cost(self, match, data):
        """Defeating every figure scores sub cost times figures and frees the slot."""
        apply_damage(match, data, "Nexu-2-0", 5)
        apply_damage(match, data, "Nexu-2-1", 5)

        p1 = match.get_player("p1")
        assert p1.vp.kills == 6
        assert p1.vp.total == 6
        assert match.get_player("p2").activations_remaining == 1

    def test_single_figure_scores_cost(self, match, data):
        apply_damage(match, data, "Darth Vader-2-0", 20)
        assert match.get_player("p2").vp.total == 18

    def test_activated_group_keeps_count(self, match, data):
        """A group that already activated does not lose a further activation."""
        match.activated_cards.append("Nexu-2")
        match.get_player("p2").activations_remaining = 1
        apply_damage(match, data, "Nexu-2-0", 5)
        apply_damage(match, data, "Nexu-2-1", 5)

        assert match.get_player("p2").activations_remaining == 1

    def test_health_never_negative(self, match, data):
        apply_damage(match, data, "Luke Skywalker-1-0", 50)
        assert match.figure_health("Luke Skywalker-1-0") == [0, 10]

    def test_elimination_ends_game(self, match, data):
        match.figure_positions["p2"] = {}
        assert check_win_conditions(match)
        assert match.ended
        assert match.winner_id == "p1"
        assert match.end_reason == "elimination"
        assert match.phase == GamePhase.ENDED

    def test_forty_vp_wins(self, match):
        match.get_player("p2").vp.add_objectives(40)
        assert check_win_conditions(match)
        assert match.winner_id == "p2"

    def test_blast_needs_damage(self, match, data):
        """Blast hits adjacent figures only when the attack dealt damage."""
        place(match, "Nexu-2-0", "e6")
        place(match, "Nexu-2-1", "f6")
        match.pending_combat = PendingCombat(
            attacker_player_id="p1", defender_player_id="p2",
            attacker_figure_key="Stormtrooper-1-0", target_figure_key="Nexu-2-0",
            stage=CombatStage.READY_TO_RESOLVE, attack_faces=[attack_face(dmg=1)],
            defense_faces=[defense_face(block=1)], surge_blast=2,
        )
        resolve_combat(match, data)
        assert match.figure_health("Nexu-2-1") == [5, 5]

        match.pending_combat = PendingCombat(
            attacker_player_id="p1", defender_player_id="p2",
            attacker_figure_key="Stormtrooper-1-0", target_figure_key="Nexu-2-0",
            stage=CombatStage.READY_TO_RESOLVE, attack_faces=[attack_face(dmg=1)],
            surge_blast=2,
        )
        resolve_combat(match, data)
        assert match.figure_health("Nexu-2-0") == [4, 5]
        assert match.figure_health("Nexu-2-1") == [3, 5]
        assert match.pending_combat is None


class TestAttackFlow:
    """Tests for a full attack through the reducer."""

    def _declare(self, match, data):
        place(match, "Darth Vader-2-0", "e5")
        place(match, "Luke Skywalker-1-0", "e6")
        game = apply_action(data, match, Action.activate("p1", "Darth Vader-2")).new_state
        result = apply_action(data, game, Action.attack("p1", "Darth Vader-2-0", "Luke Skywalker-1-0"))
        assert result.success
        return result.new_state

    def _ready(self, game, data):
        for player_id in ("p1", "p2"):
            result = apply_action(data, game, Action.create(ActionKind.COMBAT_READY, player_id))
            assert result.success
            game = result.new_state
        return game

    def _roll(self, game, data, attack_faces, defense_faces):
        rng = ScriptedRng(attack_faces)
        game = apply_action(data, game, Action.create(ActionKind.ROLL_ATTACK_DICE, "p1"), rng=rng).new_state
        rng = ScriptedRng(defense_faces)
        result = apply_action(data, game, Action.create(ActionKind.ROLL_DEFENSE_DICE, "p2"), rng=rng)
        assert result.success
        return result.new_state

    def test_attack_spends_action(self, match, data):
        game = self._declare(match, data)
        assert game.card_actions["Darth Vader-2"] == 1
        assert game.pending_combat.stage == CombatStage.PRE_COMBAT
        assert game.pending_combat.distance == 1

    def test_negative_modifiers_rejected(self, match, data):
        game = self._declare(match, data)
        result = apply_action(data, game, Action.create(
            ActionKind.COMBAT_READY, "p1", modifiers={"bonus_pierce": -2},
        ))

        assert not result.success
        assert result.error_code == "INVALID_ACTION"
        assert "bonus_pierce cannot be negative" in result.error
        assert game.pending_combat.bonus_pierce == 0

    def test_melee_needs_adjacent_target(self, match, data):
        game = apply_action(data, match, Action.activate("p1", "Darth Vader-2")).new_state
        result = apply_action(data, game, Action.attack("p1", "Darth Vader-2-0", "Luke Skywalker-1-0"))

        assert not result.success
        assert "adjacent" in result.error
        assert result.new_state is None

    def test_cannot_roll_before_ready(self, match, data):
        game = self._declare(match, data)
        result = apply_action(data, game, Action.create(ActionKind.ROLL_ATTACK_DICE, "p1"))

        assert not result.success
        assert game.pending_combat.attack_faces == []

    def test_defender_cannot_roll_attack(self, match, data):
        game = self._ready(self._declare(match, data), data)
        result = apply_action(data, game, Action.create(ActionKind.ROLL_ATTACK_DICE, "p2"))

        assert not result.success
        assert result.error_code == "NOT_YOUR_TURN"

    def test_full_attack(self, match, data):
        """Roll, spend a surge and resolve."""
        game = self._ready(self._declare(match, data), data)
        game = self._roll(
            game, data,
            [attack_face(dmg=3), attack_face(dmg=2, surge=1), attack_face(dmg=1, surge=2)],
            [defense_face(block=1)],
        )
        assert game.pending_combat.stage == CombatStage.SURGE_SPEND
        assert game.pending_combat.surge_remaining == 3

        game = apply_action(
            data, game, Action.create(ActionKind.SPEND_SURGE, "p1", ability="damage 2")
        ).new_state
        result = apply_action(data, game, Action.create(ActionKind.RESOLVE_COMBAT, "p1"))

        assert result.success
        assert result.data["damage"] == 7
        assert result.new_state.figure_health("Luke Skywalker-1-0") == [3, 10]
        assert result.new_state.pending_combat is None

    def test_cleave(self, match, data):
        """Cleave damages a second adjacent hostile figure."""
        place(match, "Nexu-2-0", "d5")
        game = self._ready(self._declare(match, data), data)
        game = self._roll(game, data, [attack_face(dmg=2, surge=1)] * 3, [defense_face()])
        game = apply_action(
            data, game, Action.create(ActionKind.SPEND_SURGE, "p1", ability="cleave 2")
        ).new_state
        result = apply_action(data, game, Action.create(ActionKind.RESOLVE_COMBAT, "p1"))

        assert result.success
        assert result.data["cleave_targets"] == ["Nexu-2-0"]
        assert result.new_state.pending_combat.stage == CombatStage.CLEAVE_PENDING

        result = apply_action(
            data, result.new_state,
            Action.create(ActionKind.CHOOSE_CLEAVE_TARGET, "p1", target="Nexu-2-0"),
        )
        assert result.success
        assert result.new_state.figure_health("Nexu-2-0") == [3, 5]
        assert result.new_state.pending_combat is None

    def test_attacker_reroll(self, match, data):
        """Rerolls happen after both rolls and replace one die."""
        place(match, "Stormtrooper-1-0", "e4")
        place(match, "Luke Skywalker-1-0", "e6")
        game = apply_action(data, match, Action.activate("p1", "Stormtrooper-1")).new_state
        game = apply_action(data, game, Action.attack("p1", "Stormtrooper-1-0", "Luke Skywalker-1-0")).new_state
        game = self._ready(game, data)
        game = self._roll(game, data, [attack_face(acc=2, dmg=1), attack_face(acc=1)], [defense_face()])
        assert game.pending_combat.stage == CombatStage.REROLL_ATTACKER

        result = apply_action(
            data, game, Action.create(ActionKind.REROLL_DIE, "p1", index=1),
            rng=ScriptedRng([attack_face(acc=1, dmg=2)]),
        )
        assert result.success
        combat = result.new_state.pending_combat
        assert combat.attack_faces[1]["dmg"] == 2
        assert combat.stage == CombatStage.READY_TO_RESOLVE
