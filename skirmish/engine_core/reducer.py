"""
Reducer - Applies actions to game state.

The reducer is the single point of state mutation.
All state changes must go through apply_action().

Design principles:
- (game, action) -> ActionResult; the input game is never touched
- Every handler works on a clone and returns it as new_state on success
- Validates before applying
- Engine errors become failures with their error code
- Delegates card effects to AbilityResolver
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable
import logging
import random
import time
import uuid

from .abilities import AbilityContext, AbilityOutcome, AbilityResolver
from .action import Action, ActionKind, ActionResult
from .combat import (
    apply_cleave,
    declare_attack,
    mark_ready,
    reroll_die,
    reroll_done,
    require_combat,
    resolve_combat,
    roll_attack,
    roll_defense,
    side_of,
    spend_surge,
)
from .errors import EngineError, ValidationError, DataIntegrityError
from .interact import apply_interact
from .movement import (
    commit_move,
    figure_speed,
    get_spaces_at_cost,
    session_cache,
    spaces_by_cost,
)
from .rounds import (
    activate_card,
    choose_deployment_zone,
    deploy_figure,
    determine_initiative,
    draw_starting_hand,
    end_activation_phase,
    end_end_of_round_window,
    end_turn,
    kill_game,
    mark_deployed,
    pass_turn,
    require_action,
    select_map_mission,
    select_squad,
    spend_action,
)
from .state import (
    CombatStage,
    Game,
    GamePhase,
    MoveInProgress,
    PendingConfirmation,
    Squad,
    UndoType,
)
from .undo import apply_undo, push_undo, snapshot
from .validation import check_playable_by, is_cc_playable_now, validate_squad

logger = logging.getLogger(__name__)

DEFAULT_CONFIRM_TTL = 300.0

CONFIRM_ILLEGAL_SQUAD = "illegal_squad"
CONFIRM_CC_PLAY = "cc_play"


def _bonus(modifiers: dict[str, Any], key: str) -> int:
    value = int(modifiers.get(key, 0))
    if value < 0:
        raise ValidationError(f"{key} cannot be negative")
    return value


@dataclass
class Reducer:
    """
    Reducer applies actions to game state.

    Holds no game state itself: `data` is the static rule data, `rng` the
    game's seeded RNG, `clock` the time source for confirmations.
    """
    data: Any
    rng: Any = None
    confirm_ttl: float = DEFAULT_CONFIRM_TTL
    clock: Callable[[], float] = field(default=time.time)

    def __post_init__(self):
        if self.rng is None:
            self.rng = random.Random()
        self.resolver = AbilityResolver(data=self.data)

    def apply(self, game: Game, action: Action) -> ActionResult:
        """
        Apply an action to the game.

        Returns ActionResult with the new game or an error.
        """
        validation_error = self._validate_action(game, action)
        if validation_error:
            return ActionResult.failure(validation_error, error_code="INVALID_ACTION")

        handler = self._get_handler(action.kind)
        if not handler:
            return ActionResult.failure(
                f"No handler for action kind: {action.kind}",
                error_code="NO_HANDLER",
            )

        try:
            result = handler(game, action)
        except EngineError as e:
            logger.debug("Action %s rejected: %s", action.kind.value, e.message)
            return ActionResult.failure(e.message, error_code=e.error_code)
        except Exception as e:
            logger.exception("Handler for %s failed", action.kind.value)
            return ActionResult.failure(str(e), error_code="HANDLER_ERROR")

        if result.success and result.new_state is not None:
            self._prune_confirmations(result.new_state)
        return result

    def _validate_action(self, game: Game, action: Action) -> str | None:
        """
        Validate that an action can be applied at all.

        Returns error message if invalid, None if valid. Turn and phase
        rules are checked by the handlers.
        """
        if action.game_id and action.game_id != game.game_id:
            return f"Action is for game {action.game_id}, not {game.game_id}"
        if not action.player_id:
            return "Action has no player"
        if game.get_player(action.player_id) is None:
            return f"{action.player_id} is not a player in this game"
        if game.ended:
            return "Game has ended - no actions allowed"
        return None

    def _get_handler(self, kind: ActionKind):
        """Get the handler function for an action kind."""
        handlers = {
            ActionKind.SELECT_SQUAD: self._handle_select_squad,
            ActionKind.CONFIRM_SQUAD: self._handle_confirm_squad,
            ActionKind.SELECT_MAP_MISSION: self._handle_select_map_mission,
            ActionKind.DETERMINE_INITIATIVE: self._handle_determine_initiative,
            ActionKind.CHOOSE_DEPLOYMENT_ZONE: self._handle_choose_deployment_zone,
            ActionKind.DEPLOY_FIGURE: self._handle_deploy_figure,
            ActionKind.MARK_DEPLOYED: self._handle_mark_deployed,
            ActionKind.DRAW_STARTING_HAND: self._handle_draw_starting_hand,
            ActionKind.ACTIVATE_DEPLOYMENT_CARD: self._handle_activate,
            ActionKind.MOVE: self._handle_move,
            ActionKind.MOVE_COMMIT: self._handle_move_commit,
            ActionKind.ATTACK: self._handle_attack,
            ActionKind.COMBAT_READY: self._handle_combat_ready,
            ActionKind.ROLL_ATTACK_DICE: self._handle_roll_attack,
            ActionKind.ROLL_DEFENSE_DICE: self._handle_roll_defense,
            ActionKind.REROLL_DIE: self._handle_reroll_die,
            ActionKind.REROLL_DONE: self._handle_reroll_done,
            ActionKind.SPEND_SURGE: self._handle_spend_surge,
            ActionKind.RESOLVE_COMBAT: self._handle_resolve_combat,
            ActionKind.CHOOSE_CLEAVE_TARGET: self._handle_cleave,
            ActionKind.INTERACT: self._handle_interact,
            ActionKind.PLAY_COMMAND_CARD: self._handle_play_command_card,
            ActionKind.PLAY_SPECIAL_ACTION: self._handle_play_special_action,
            ActionKind.CONFIRM_CC_PLAY: self._handle_confirm_cc_play,
            ActionKind.CANCEL_CC_PLAY: self._handle_cancel_cc_play,
            ActionKind.RESOLVE_CC_CHOICE: self._handle_resolve_cc_choice,
            ActionKind.PASS_TURN: self._handle_pass_turn,
            ActionKind.END_TURN: self._handle_end_turn,
            ActionKind.END_ACTIVATION_PHASE: self._handle_end_activation_phase,
            ActionKind.END_END_OF_ROUND_WINDOW: self._handle_end_of_round_window,
            ActionKind.KILL_GAME: self._handle_kill_game,
            ActionKind.UNDO: self._handle_undo,
        }
        return handlers.get(kind)

    # ------------------------------------------------------------------
    # Confirmations
    # ------------------------------------------------------------------

    def _open_confirmation(
        self, game: Game, kind: str, player_id: str, reason: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        confirmation = PendingConfirmation(
            confirmation_id=uuid.uuid4().hex[:12],
            kind=kind,
            player_id=player_id,
            created_at=self.clock(),
            reason=reason,
            data=data,
        )
        game.pending_confirmations[confirmation.confirmation_id] = confirmation
        return {
            "confirmation_id": confirmation.confirmation_id,
            "kind": kind,
            "reason": reason,
            "expires_in": self.confirm_ttl,
        }

    def _take_confirmation(self, game: Game, action: Action, kind: str | None = None) -> PendingConfirmation:
        confirmation_id = action.payload.get("confirmation_id")
        confirmation = game.pending_confirmations.get(confirmation_id)
        if confirmation is None:
            raise DataIntegrityError(f"No pending confirmation {confirmation_id}", error_code="SESSION_MISSING")
        if confirmation.player_id != action.player_id:
            raise ValidationError("This confirmation belongs to the other player", error_code="NOT_YOUR_TURN")
        if kind and confirmation.kind != kind:
            raise ValidationError(f"Confirmation {confirmation_id} is not a {kind} confirmation")
        if confirmation.is_expired(self.clock(), self.confirm_ttl):
            raise ValidationError("Confirmation expired; start again", error_code="CONFIRMATION_EXPIRED")
        del game.pending_confirmations[confirmation_id]
        return confirmation

    def _prune_confirmations(self, game: Game):
        now = self.clock()
        for confirmation_id, confirmation in list(game.pending_confirmations.items()):
            if confirmation.is_expired(now, self.confirm_ttl):
                del game.pending_confirmations[confirmation_id]

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _handle_select_squad(self, game: Game, action: Action) -> ActionResult:
        params = action.payload.params
        squad = Squad(
            name=params.get("name", ""),
            dc_list=list(params.get("dc_list") or []),
            cc_list=list(params.get("cc_list") or []),
        )
        validation = validate_squad(squad.dc_list, squad.cc_list, self.data)
        state = game.clone()
        if not validation.legal and not params.get("force"):
            if state.phase != GamePhase.SETUP:
                raise ValidationError("Squads can only be selected during setup")
            prompt = self._open_confirmation(
                state, CONFIRM_ILLEGAL_SQUAD, action.player_id,
                "; ".join(validation.errors),
                {"name": squad.name, "dc_list": squad.dc_list, "cc_list": squad.cc_list},
            )
            result = ActionResult.success_with_state(
                state,
                changes=[f"Squad is not legal: {'; '.join(validation.errors)}"],
                data={"errors": validation.errors},
            )
            result.pending_confirmation = prompt
            return result

        select_squad(state, self.data, action.player_id, squad)
        return ActionResult.success_with_state(
            state,
            changes=[f"{action.player_id} selected a squad ({validation.dc_total} points)"],
            data={"legal": validation.legal, "errors": validation.errors},
        )

    def _handle_confirm_squad(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        confirmation = self._take_confirmation(state, action, CONFIRM_ILLEGAL_SQUAD)
        squad = Squad(**confirmation.data)
        select_squad(state, self.data, action.player_id, squad)
        return ActionResult.success_with_state(
            state, changes=[f"{action.player_id} confirmed an illegal squad ({confirmation.reason})"],
        )

    def _handle_select_map_mission(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        map_id = action.payload.get("map_id")
        variant = action.payload.get("variant") or action.payload.get("mission")
        select_map_mission(state, self.data, map_id, variant)
        return ActionResult.success_with_state(state, changes=[f"Map {map_id}, mission {variant}"])

    def _handle_determine_initiative(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        winner = determine_initiative(state, self.rng)
        return ActionResult.success_with_state(
            state, changes=[f"{winner} has initiative"], data={"initiative_player_id": winner},
        )

    def _handle_choose_deployment_zone(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        zone = action.payload.get("zone")
        choose_deployment_zone(state, action.player_id, zone)
        return ActionResult.success_with_state(state, changes=[f"{action.player_id} deploys in {zone}"])

    def _handle_deploy_figure(self, game: Game, action: Action) -> ActionResult:
        figure_key = action.figure_key or action.payload.get("figure_key")
        if not figure_key:
            raise ValidationError("No figure given")
        state = game.clone()
        deploy_figure(
            state, self.data, action.player_id, figure_key,
            action.payload.get("cell", ""), action.payload.get("orientation"),
        )
        push_undo(state, UndoType.DEPLOY_PICK, action.player_id, {"figure_key": figure_key}, self.clock())
        cell = state.position_of(figure_key)
        return ActionResult.success_with_state(
            state, changes=[f"Deployed {figure_key} at {cell.upper()}"], data={"cell": cell},
        )

    def _handle_mark_deployed(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        changes = mark_deployed(state, self.data, action.player_id)
        return ActionResult.success_with_state(state, changes=changes)

    def _handle_draw_starting_hand(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        drawn = draw_starting_hand(state, self.rng, action.player_id)
        return ActionResult.success_with_state(
            state, changes=[f"{action.player_id} drew {len(drawn)} command cards"], data={"drawn": drawn},
        )

    # ------------------------------------------------------------------
    # Activation and movement
    # ------------------------------------------------------------------

    def _handle_activate(self, game: Game, action: Action) -> ActionResult:
        card_key = action.payload.get("card_key") or action.figure_key
        if not card_key:
            raise ValidationError("No deployment card given")
        state = game.clone()
        activate_card(state, action.player_id, card_key)
        return ActionResult.success_with_state(
            state, changes=[f"{action.player_id} activated {card_key}"],
            data={"actions": state.card_actions[card_key]},
        )

    def _require_figure(self, action: Action) -> str:
        figure_key = action.figure_key or action.payload.get("figure_key")
        if not figure_key:
            raise ValidationError("No figure given")
        return figure_key

    def _handle_move(self, game: Game, action: Action) -> ActionResult:
        """
        Bank MP or pick a distance.

        Without `distance`, spends an action and adds the figure's speed to
        its MP bank. With `distance`, selects that many MP for the next
        move_commit and lists the destinations at exactly that cost.
        """
        figure_key = self._require_figure(action)
        state = game.clone()
        distance = action.payload.get("distance")

        if distance is None:
            spend_action(state, action.player_id, figure_key)
            session = state.move_in_progress.setdefault(figure_key, MoveInProgress(figure_key=figure_key))
            speed = figure_speed(state, self.data, figure_key)
            session.mp_remaining += speed
            session.pending_distance = None
            cache = session_cache(state, self.data, figure_key)
            spaces = spaces_by_cost(cache, session.mp_remaining)
            changes = [f"{figure_key} gains {speed} MP ({session.mp_remaining} MP)"]
            if not spaces:
                changes.append("No valid movement spaces")
            state.log(changes[0])
            return ActionResult.success_with_state(
                state, changes=changes,
                data={"mp_remaining": session.mp_remaining, "spaces": spaces},
            )

        self._require_mover(state, action.player_id, figure_key)
        session = state.move_in_progress.get(figure_key)
        if session is None:
            raise DataIntegrityError(f"No movement in progress for {figure_key}", error_code="SESSION_MISSING")
        distance = int(distance)
        if distance <= 0 or distance > session.mp_remaining:
            raise ValidationError(
                f"Distance must be between 1 and {session.mp_remaining}",
                error_code="INSUFFICIENT_RESOURCES",
            )
        cache = session_cache(state, self.data, figure_key)
        spaces = get_spaces_at_cost(cache, distance)
        session.pending_distance = distance
        changes = [f"{figure_key} moving {distance} MP"]
        if not spaces:
            changes.append("No valid movement spaces")
        return ActionResult.success_with_state(
            state, changes=changes,
            data={"distance": distance, "spaces": spaces, "mp_remaining": session.mp_remaining},
        )

    def _require_mover(self, state: Game, player_id: str, figure_key: str):
        if state.phase != GamePhase.ACTIVATION:
            raise ValidationError("Figures only move during the activation phase")
        if state.current_activation_turn_player_id != player_id:
            raise ValidationError("Not your activation turn", error_code="NOT_YOUR_TURN")
        if state.owner_of(figure_key) != player_id:
            raise ValidationError(f"{figure_key} is not your figure")

    def _handle_move_commit(self, game: Game, action: Action) -> ActionResult:
        figure_key = self._require_figure(action)
        state = game.clone()
        self._require_mover(state, action.player_id, figure_key)
        session = state.move_in_progress.get(figure_key)
        if session is None:
            raise DataIntegrityError(f"No movement in progress for {figure_key}", error_code="SESSION_MISSING")
        distance = action.payload.get("distance", session.pending_distance)
        destination = action.payload.get("destination")
        if distance is None or not destination:
            raise ValidationError("Choose a distance and a destination")

        previous_orientation = state.figure_orientations.get(figure_key)
        positions_before = {key: cell for _, key, cell in state.iter_figures()}
        report = commit_move(state, self.data, figure_key, int(distance), destination)
        push_undo(
            state, UndoType.MOVE, action.player_id,
            {
                "figure_key": figure_key,
                "previous_top_left": report.previous_top_left,
                "previous_orientation": previous_orientation,
                "mp_before": report.mp_before,
                "pushed_positions": {key: positions_before[key] for key in report.pushed},
            },
            self.clock(),
        )
        path = " -> ".join(cell.upper() for cell in report.path)
        changes = [f"{figure_key} moved {path} ({report.cost} MP)"]
        for pushed_key in report.pushed:
            changes.append(f"{pushed_key} pushed to {state.position_of(pushed_key).upper()}")
        for message in changes:
            state.log(message)
        remaining = state.move_in_progress.get(figure_key)
        return ActionResult.success_with_state(
            state, changes=changes,
            data={
                "destination": report.destination,
                "size": report.size,
                "path": report.path,
                "mp_remaining": remaining.mp_remaining if remaining else 0,
            },
        )

    # ------------------------------------------------------------------
    # Combat
    # ------------------------------------------------------------------

    def _handle_attack(self, game: Game, action: Action) -> ActionResult:
        figure_key = self._require_figure(action)
        target = action.payload.get("target")
        if not target:
            raise ValidationError("No target given")
        state = game.clone()
        require_action(state, action.player_id, figure_key)
        combat = declare_attack(state, self.data, action.player_id, figure_key, target)
        spend_action(state, action.player_id, figure_key)
        message = f"{figure_key} attacks {target} at range {combat.distance}"
        state.log(message)
        return ActionResult.success_with_state(
            state, changes=[message],
            data={"attack_dice": combat.attack_dice, "defense_dice": combat.defense_dice},
        )

    def _handle_combat_ready(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        combat = require_combat(state, CombatStage.PRE_COMBAT)
        side = side_of(combat, action.player_id)
        modifiers = action.payload.get("modifiers") or {}
        if side == "attacker":
            combat.bonus_dice.extend(modifiers.get("bonus_dice", []))
            combat.bonus_pierce += _bonus(modifiers, "bonus_pierce")
            combat.bonus_accuracy += _bonus(modifiers, "bonus_accuracy")
            combat.bonus_hits += _bonus(modifiers, "bonus_hits")
            combat.bonus_surge_abilities.extend(modifiers.get("surge_abilities", []))
        else:
            combat.removed_dice.extend(modifiers.get("removed_dice", []))
            combat.bonus_block += _bonus(modifiers, "bonus_block")
            combat.bonus_evade += _bonus(modifiers, "bonus_evade")
        both = mark_ready(combat, action.player_id)
        changes = [f"{side.capitalize()} ready"]
        if both:
            changes.append("Both sides ready: attacker rolls")
        return ActionResult.success_with_state(state, changes=changes, data={"both_ready": both})

    def _require_side(self, combat: Any, action: Action, side: str):
        if side_of(combat, action.player_id) != side:
            raise ValidationError(f"Only the {side} can do that", error_code="NOT_YOUR_TURN")

    def _handle_roll_attack(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        combat = require_combat(state, CombatStage.PRE_COMBAT)
        self._require_side(combat, action, "attacker")
        roll_attack(combat, self.data, self.rng)
        totals = combat.attack_totals()
        return ActionResult.success_with_state(
            state,
            changes=[f"Attack: {totals['acc']} acc, {totals['dmg']} dmg, {totals['surge']} surge"],
            data={"faces": combat.attack_faces, "totals": totals},
        )

    def _handle_roll_defense(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        combat = require_combat(state, CombatStage.ATTACK_ROLLED)
        self._require_side(combat, action, "defender")
        roll_defense(combat, self.data, self.rng)
        totals = combat.defense_totals()
        return ActionResult.success_with_state(
            state,
            changes=[f"Defense: {totals['block']} block, {totals['evade']} evade, {totals['dodge']} dodge"],
            data={"faces": combat.defense_faces, "totals": totals, "stage": combat.stage.value},
        )

    def _handle_reroll_die(self, game: Game, action: Action) -> ActionResult:
        index = action.payload.get("index")
        if index is None:
            raise ValidationError("No die index given")
        state = game.clone()
        combat = require_combat(state, CombatStage.REROLL_ATTACKER, CombatStage.REROLL_DEFENDER)
        face = reroll_die(combat, self.data, self.rng, action.player_id, int(index))
        return ActionResult.success_with_state(
            state, changes=[f"Rerolled die {index}"],
            data={"face": face, "stage": combat.stage.value},
        )

    def _handle_reroll_done(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        combat = require_combat(state, CombatStage.REROLL_ATTACKER, CombatStage.REROLL_DEFENDER)
        reroll_done(combat, action.player_id)
        return ActionResult.success_with_state(
            state, changes=["Rerolls done"], data={"stage": combat.stage.value},
        )

    def _handle_spend_surge(self, game: Game, action: Action) -> ActionResult:
        ability = action.payload.get("ability")
        if not ability:
            raise ValidationError("No surge ability given")
        state = game.clone()
        combat = require_combat(state, CombatStage.SURGE_SPEND)
        self._require_side(combat, action, "attacker")
        spend_surge(combat, self.data, ability)
        return ActionResult.success_with_state(
            state, changes=[f"Spent surge on {ability}"],
            data={"surge_remaining": combat.surge_remaining, "stage": combat.stage.value},
        )

    def _handle_resolve_combat(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        combat = require_combat(state, CombatStage.SURGE_SPEND, CombatStage.READY_TO_RESOLVE)
        self._require_side(combat, action, "attacker")
        result, changes = resolve_combat(state, self.data)
        for message in changes:
            state.log(message)
        return ActionResult.success_with_state(
            state, changes=changes,
            data={
                "hit": result.hit,
                "damage": result.damage,
                "text": result.result_text,
                "cleave_targets": list(state.pending_combat.cleave_targets) if state.pending_combat else [],
            },
        )

    def _handle_cleave(self, game: Game, action: Action) -> ActionResult:
        target = action.payload.get("target")
        state = game.clone()
        combat = require_combat(state, CombatStage.CLEAVE_PENDING)
        self._require_side(combat, action, "attacker")
        changes = apply_cleave(state, self.data, target)
        for message in changes:
            state.log(message)
        return ActionResult.success_with_state(state, changes=changes)

    # ------------------------------------------------------------------
    # Interact
    # ------------------------------------------------------------------

    def _handle_interact(self, game: Game, action: Action) -> ActionResult:
        figure_key = self._require_figure(action)
        option_id = action.payload.get("option_id")
        if not option_id:
            raise ValidationError("No interact option given")
        state = game.clone()
        card_key = require_action(state, action.player_id, figure_key)
        player = state.get_player(action.player_id)
        prior = {
            "figure_key": figure_key,
            "option_id": option_id,
            "opened_doors": list(state.opened_doors),
            "launch_panel_state": dict(state.launch_panel_state),
            "carried_contraband": bool(state.figure_contraband.get(figure_key)),
            "launch_panel_flipped": player.launch_panel_flipped_this_round,
            "actions_before": state.card_actions.get(card_key, 0),
        }
        message = apply_interact(state, self.data, figure_key, option_id)
        spend_action(state, action.player_id, figure_key)
        push_undo(state, UndoType.INTERACT, action.player_id, prior, self.clock())
        state.log(message)
        return ActionResult.success_with_state(state, changes=[message])

    # ------------------------------------------------------------------
    # Command cards
    # ------------------------------------------------------------------

    def _play_outcome(
        self,
        state: Game,
        player_id: str,
        card_name: str,
        figure_key: str | None,
        undo_type: UndoType,
        forced: bool,
        from_hand: bool = True,
        spends_action: bool = False,
    ) -> ActionResult:
        """
        Resolve a card on a trial copy and commit it unless it needs a confirmation.

        Special actions spend the figure's action only when the play commits.
        """
        before = snapshot(state)
        trial = state.clone()
        player = trial.get_player(player_id)
        if spends_action:
            spend_action(trial, player_id, figure_key)
        if from_hand:
            player.hand.remove(card_name)
        context = AbilityContext(
            game=trial, player_id=player_id, data=self.data, rng=self.rng,
            card_name=card_name, figure_key=figure_key,
        )
        outcome = self.resolver.resolve(card_name, context)

        if outcome.is_manual and not forced:
            prompt = self._open_confirmation(
                state, CONFIRM_CC_PLAY, player_id, outcome.manual_message or "",
                {"card_name": card_name, "figure_key": figure_key,
                 "undo_type": undo_type.value, "from_hand": from_hand,
                 "spends_action": spends_action},
            )
            result = ActionResult.success_with_state(
                state, changes=[f"{card_name} needs manual resolution"], data={"outcome": outcome.to_dict()},
            )
            result.pending_confirmation = prompt
            return result

        if from_hand:
            player.discard.append(card_name)
        push_undo(trial, undo_type, player_id, {"card_name": card_name, "snapshot": before}, self.clock())
        changes = [f"{player_id} played {card_name}"]
        if outcome.log_message:
            changes.append(outcome.log_message)
        if outcome.is_manual:
            changes.append(f"Resolve manually: {outcome.manual_message}")

        result = ActionResult.success_with_state(trial, changes=changes, data={"outcome": outcome.to_dict()})
        if outcome.needs_input:
            pending = {
                "player_id": player_id,
                "card_name": card_name,
                "figure_key": figure_key,
            }
            if outcome.requires_space_choice:
                trial.pending_cc_space_choice = {**pending, "valid_spaces": outcome.valid_spaces}
                result.pending_choice = {"kind": "space", "options": outcome.valid_spaces}
            else:
                trial.pending_cc_choice = {**pending, "options": outcome.choice_options}
                result.pending_choice = {"kind": "option", "options": outcome.choice_options}
        for message in changes:
            trial.log(message)
        return result

    def _handle_play_command_card(self, game: Game, action: Action) -> ActionResult:
        card_name = action.payload.get("card_name")
        player_id = action.player_id
        state = game.clone()
        player = state.get_player(player_id)
        if card_name not in player.hand:
            raise ValidationError(f"{card_name} is not in your hand")
        if state.pending_cc_choice or state.pending_cc_space_choice:
            raise ValidationError("Resolve the pending card choice first")
        card = self.data.get_cc(card_name)
        if card is not None and card.is_special_action:
            raise ValidationError(f"{card_name} is a special action; play it from a figure's activation")

        forced = bool(action.payload.get("force"))
        reasons = []
        if card is None:
            reasons.append(f"Unknown command card: {card_name}")
        elif not is_cc_playable_now(state, player_id, card):
            reasons.append(f"{card_name} ({card.timing}) cannot be played right now")
        if card is not None:
            allowed, reason = check_playable_by(state, player_id, card, self.data)
            if not allowed:
                reasons.append(reason)
        figure_key = action.figure_key or action.payload.get("figure_key")
        if reasons and not forced:
            prompt = self._open_confirmation(
                state, CONFIRM_CC_PLAY, player_id, " ".join(reasons),
                {"card_name": card_name, "figure_key": figure_key,
                 "undo_type": UndoType.CC_PLAY.value, "from_hand": True},
            )
            result = ActionResult.success_with_state(state, changes=reasons)
            result.pending_confirmation = prompt
            return result
        return self._play_outcome(state, player_id, card_name, figure_key, UndoType.CC_PLAY, forced)

    def _handle_play_special_action(self, game: Game, action: Action) -> ActionResult:
        """
        Use a special action: a command card from hand or a deployment-card ability.

        Costs one of the figure's actions either way.
        """
        figure_key = self._require_figure(action)
        state = game.clone()
        require_action(state, action.player_id, figure_key)
        card_name = action.payload.get("card_name")
        if card_name:
            card = self.data.get_cc(card_name)
            if card_name not in state.get_player(action.player_id).hand:
                raise ValidationError(f"{card_name} is not in your hand")
            if card is None or not card.is_special_action:
                raise ValidationError(f"{card_name} is not a special action")
            return self._play_outcome(
                state, action.player_id, card_name, figure_key, UndoType.CC_PLAY,
                bool(action.payload.get("force")), spends_action=True,
            )
        ability_id = action.payload.get("ability_id")
        if not ability_id:
            raise ValidationError("No card or ability given")
        return self._play_outcome(
            state, action.player_id, ability_id, figure_key, UndoType.CC_PLAY_DC,
            bool(action.payload.get("force")), from_hand=False, spends_action=True,
        )

    def _handle_confirm_cc_play(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        confirmation = self._take_confirmation(state, action, CONFIRM_CC_PLAY)
        data = confirmation.data
        card_name = data["card_name"]
        from_hand = data.get("from_hand", True)
        if from_hand and card_name not in state.get_player(action.player_id).hand:
            raise ValidationError(f"{card_name} is no longer in your hand")
        return self._play_outcome(
            state, action.player_id, card_name, data.get("figure_key"),
            UndoType(data.get("undo_type", UndoType.CC_PLAY.value)), True, from_hand=from_hand,
            spends_action=data.get("spends_action", False),
        )

    def _handle_cancel_cc_play(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        confirmation = self._take_confirmation(state, action)
        label = confirmation.data.get("card_name") or confirmation.kind
        return ActionResult.success_with_state(state, changes=[f"Cancelled {label}"])

    def _handle_resolve_cc_choice(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        pending = state.pending_cc_space_choice or state.pending_cc_choice
        if not pending:
            raise DataIntegrityError("No card choice pending", error_code="SESSION_MISSING")
        if pending["player_id"] != action.player_id:
            raise ValidationError("The pending choice belongs to the other player", error_code="NOT_YOUR_TURN")
        choice = action.payload.get("choice")
        space = action.payload.get("space")
        if state.pending_cc_space_choice and not space:
            raise ValidationError("Choose a space")
        if state.pending_cc_choice and not state.pending_cc_space_choice and choice is None:
            raise ValidationError("Choose an option")

        context = AbilityContext(
            game=state, player_id=action.player_id, data=self.data, rng=self.rng,
            card_name=pending["card_name"], figure_key=pending.get("figure_key"),
            choice=None if choice is None else str(choice), space=space,
        )
        outcome: AbilityOutcome = self.resolver.resolve(pending["card_name"], context)
        if outcome.needs_input:
            raise ValidationError(outcome.log_message or "Invalid choice")
        state.pending_cc_choice = None
        state.pending_cc_space_choice = None
        changes = []
        if outcome.log_message:
            changes.append(outcome.log_message)
        if outcome.is_manual:
            changes.append(f"Resolve manually: {outcome.manual_message}")
        for message in changes:
            state.log(message)
        return ActionResult.success_with_state(state, changes=changes, data={"outcome": outcome.to_dict()})

    # ------------------------------------------------------------------
    # Turn and round
    # ------------------------------------------------------------------

    def _handle_pass_turn(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        previous = pass_turn(state, action.player_id)
        push_undo(state, UndoType.PASS_TURN, action.player_id, {"previous_turn_player_id": previous}, self.clock())
        return ActionResult.success_with_state(
            state, changes=[f"{action.player_id} passed to {state.current_activation_turn_player_id}"],
        )

    def _handle_end_turn(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        changes = end_turn(state, action.player_id)
        return ActionResult.success_with_state(state, changes=changes)

    def _handle_end_activation_phase(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        changes = end_activation_phase(state, self.data, action.player_id)
        return ActionResult.success_with_state(state, changes=changes)

    def _handle_end_of_round_window(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        changes = end_end_of_round_window(state, self.data, action.player_id)
        return ActionResult.success_with_state(state, changes=changes)

    def _handle_kill_game(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        kill_game(state)
        return ActionResult.success_with_state(state, changes=[f"Game ended by {action.player_id}"])

    def _handle_undo(self, game: Game, action: Action) -> ActionResult:
        state = game.clone()
        message = apply_undo(state, action.player_id)
        return ActionResult.success_with_state(state, changes=[message])


def apply_action(data: Any, game: Game, action: Action, rng: Any = None) -> ActionResult:
    """
    Convenience function to apply an action.

    Creates a Reducer and applies the action.
    """
    reducer = Reducer(data=data, rng=rng)
    return reducer.apply(game, action)
