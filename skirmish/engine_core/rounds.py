"""
Round/Phase State Machine - setup, deployment and the repeating round loop.

    SETUP -> INITIATIVE_DETERMINED -> DEPLOYMENT_ZONE_CHOSEN -> DEPLOYING
        -> [ACTIVATION -> STATUS] ... -> ENDED

Every transition function checks its own guard and raises ValidationError
when called out of turn or out of phase. The reducer calls these on a copy
of the game.
"""

from __future__ import annotations
from typing import Any
import logging

from .combat import check_win_conditions, end_game
from .coords import normalize_coord, rotate_size
from .errors import ValidationError, DataIntegrityError
from .mission_rules import (
    count_terminals_controlled,
    run_end_of_round_rules,
    run_start_of_round_rules,
)
from .movement import filter_valid_top_left_spaces, occupied_cells
from .state import (
    Game,
    GamePhase,
    Squad,
    card_key_of,
    dc_name_of,
    make_card_key,
)

logger = logging.getLogger(__name__)

ACTIONS_PER_ACTIVATION = 2
STARTING_HAND_SIZE = 3
DEPLOYMENT_ZONES = ("red", "blue")
MISSION_VARIANTS = ("a", "b")


def _require_player(game: Game, player_id: str):
    player = game.get_player(player_id)
    if player is None:
        raise DataIntegrityError(f"Unknown player: {player_id}", error_code="GAME_NOT_FOUND")
    return player


def _require_live(game: Game):
    if game.ended:
        raise ValidationError("Game has ended")


def _require_phase(game: Game, *phases: GamePhase):
    _require_live(game)
    if game.phase not in phases:
        names = ", ".join(p.value for p in phases)
        raise ValidationError(f"Not allowed in phase {game.phase.value} (expected {names})")


# ----------------------------------------------------------------------
# Setup
# ----------------------------------------------------------------------

def select_squad(game: Game, data: Any, player_id: str, squad: Squad):
    """
    Record a squad, build its health entries and its command deck.

    Legality is checked by the caller, which may ask for an override first.
    """
    _require_phase(game, GamePhase.SETUP)
    player = _require_player(game, player_id)
    if not squad.dc_list:
        raise ValidationError("Squad has no deployment cards")

    for old_key in game.card_keys_for(player_id):
        game.health.pop(old_key, None)
    player.squad = Squad(name=squad.name, dc_list=list(squad.dc_list), cc_list=list(squad.cc_list))
    player.squad_confirmed = True
    player.deck = list(squad.cc_list)
    player.hand = []
    player.discard = []
    player.hand_drawn = False
    for group, dc_name in enumerate(squad.dc_list, start=1):
        stats = data.get_dc(dc_name)
        figures = max(1, stats.figures)
        game.health[make_card_key(dc_name, group)] = [
            [stats.health, stats.health] for _ in range(figures)
        ]
    game.log(f"{player_id} selected squad {squad.name or '(unnamed)'} ({len(squad.dc_list)} cards)")
    logger.info("Game %s: %s squad selected", game.game_id, player_id)


def select_map_mission(game: Game, data: Any, map_id: str, variant: str):
    _require_phase(game, GamePhase.SETUP)
    variant = str(variant or "").lower()
    if variant not in MISSION_VARIANTS:
        raise ValidationError(f"Mission variant must be one of {', '.join(MISSION_VARIANTS)}")
    data.get_map(map_id)
    game.selected_map = map_id
    game.selected_mission = variant
    game.log(f"Map {map_id}, mission {variant.upper()}")


def determine_initiative(game: Game, rng: Any) -> str:
    """Pick the initiative player with the game's seeded RNG."""
    _require_phase(game, GamePhase.SETUP)
    if not all(p.squad_confirmed for p in game.players):
        raise ValidationError("Both players must select a squad first")
    if not game.selected_map:
        raise ValidationError("Select a map and mission first")
    game.initiative_player_id = rng.choice(game.player_ids)
    game.phase = GamePhase.INITIATIVE_DETERMINED
    game.log(f"{game.initiative_player_id} has initiative")
    logger.info("Game %s: initiative to %s", game.game_id, game.initiative_player_id)
    return game.initiative_player_id


def choose_deployment_zone(game: Game, player_id: str, zone: str):
    _require_phase(game, GamePhase.INITIATIVE_DETERMINED)
    if player_id != game.initiative_player_id:
        raise ValidationError("Only the initiative player chooses the deployment zone", error_code="NOT_YOUR_TURN")
    zone = str(zone or "").lower()
    if zone not in DEPLOYMENT_ZONES:
        raise ValidationError(f"Deployment zone must be one of {', '.join(DEPLOYMENT_ZONES)}")
    other_zone = DEPLOYMENT_ZONES[1] if zone == DEPLOYMENT_ZONES[0] else DEPLOYMENT_ZONES[0]
    game.get_player(player_id).deployment_zone = zone
    game.get_player(game.opponent_id(player_id)).deployment_zone = other_zone
    game.deployment_zone_chosen = zone
    game.phase = GamePhase.DEPLOYMENT_ZONE_CHOSEN
    game.log(f"{player_id} deploys in {zone}")


# ----------------------------------------------------------------------
# Deployment
# ----------------------------------------------------------------------

def deploying_player(game: Game) -> str | None:
    """Initiative side deploys first, then the other side."""
    if game.phase not in (GamePhase.DEPLOYMENT_ZONE_CHOSEN, GamePhase.DEPLOYING):
        return None
    first = game.initiative_player_id
    if first is None:
        return None
    if not game.get_player(first).deployed:
        return first
    second = game.opponent_id(first)
    if not game.get_player(second).deployed:
        return second
    return None


def _allowed_orientations(data: Any, figure_key: str) -> list[str]:
    printed = data.get_dc(dc_name_of(figure_key)).size or "1x1"
    rotated = rotate_size(printed)
    return [printed] if rotated == printed else [printed, rotated]


def valid_deployment_cells(game: Game, data: Any, player_id: str, figure_key: str, size: str | None = None) -> list[str]:
    """Top-left cells where the figure's whole footprint fits in its zone."""
    player = _require_player(game, player_id)
    if not player.deployment_zone or not game.selected_map:
        return []
    geometry = data.get_map(game.selected_map)
    zone_cells = geometry.deployment_zones.get(player.deployment_zone, [])
    size = size or _allowed_orientations(data, figure_key)[0]
    allowed = [c for c in zone_cells if c not in set(geometry.blocking)]
    return filter_valid_top_left_spaces(
        zone_cells, size, allowed, occupied_cells(game, data, exclude=figure_key)
    )


def deploy_figure(game: Game, data: Any, player_id: str, figure_key: str, cell: str, orientation: str | None = None):
    _require_phase(game, GamePhase.DEPLOYMENT_ZONE_CHOSEN, GamePhase.DEPLOYING)
    if deploying_player(game) != player_id:
        raise ValidationError("Not your deployment turn", error_code="NOT_YOUR_TURN")
    if card_key_of(figure_key) not in game.card_keys_for(player_id) or game.figure_health(figure_key) is None:
        raise ValidationError(f"{figure_key} is not in your squad")
    if figure_key in game.figure_positions.get(player_id, {}):
        raise ValidationError(f"{figure_key} is already deployed")

    orientations = _allowed_orientations(data, figure_key)
    size = orientation or orientations[0]
    if size not in orientations:
        raise ValidationError(f"Orientation {size} not allowed for {figure_key}")
    cell = normalize_coord(cell)
    if cell not in valid_deployment_cells(game, data, player_id, figure_key, size):
        raise ValidationError(f"{cell.upper()} is not a free space in your deployment zone")

    game.figure_positions.setdefault(player_id, {})[figure_key] = cell
    if size != orientations[0]:
        game.figure_orientations[figure_key] = size
    game.phase = GamePhase.DEPLOYING
    game.log(f"{player_id} deployed {figure_key} at {cell.upper()}")


def undeployed_figures(game: Game, player_id: str) -> list[str]:
    placed = game.figure_positions.get(player_id, {})
    return [
        figure_key
        for card_key in game.card_keys_for(player_id)
        for figure_key in game.figure_keys_for_card(card_key)
        if figure_key not in placed
    ]


def mark_deployed(game: Game, data: Any, player_id: str) -> list[str]:
    """Finish a side's deployment. Starts round 1 once both sides are done."""
    player = _require_player(game, player_id)
    if player.deployed:
        raise ValidationError(f"{player_id} has already finished deploying")
    _require_phase(game, GamePhase.DEPLOYMENT_ZONE_CHOSEN, GamePhase.DEPLOYING)
    if deploying_player(game) != player_id:
        raise ValidationError("Not your deployment turn", error_code="NOT_YOUR_TURN")
    missing = undeployed_figures(game, player_id)
    if missing:
        raise ValidationError(f"Deploy every figure first: {', '.join(missing)}")

    player.deployed = True
    game.phase = GamePhase.DEPLOYING
    changes = [f"{player_id} finished deploying"]
    game.log(changes[0])
    logger.info("Game %s: %s deployed", game.game_id, player_id)
    if all(p.deployed for p in game.players):
        changes.extend(start_round(game, data))
    return changes


def draw_starting_hand(game: Game, rng: Any, player_id: str) -> list[str]:
    """Shuffle the command deck and draw the opening hand, once."""
    _require_live(game)
    player = _require_player(game, player_id)
    if player.hand_drawn:
        raise ValidationError(f"{player_id} has already drawn a starting hand")
    if not player.squad_confirmed:
        raise ValidationError("Select a squad first")
    rng.shuffle(player.deck)
    drawn = player.deck[:STARTING_HAND_SIZE]
    del player.deck[:STARTING_HAND_SIZE]
    player.hand.extend(drawn)
    player.hand_drawn = True
    game.log(f"{player_id} drew {len(drawn)} command cards")
    return drawn


def kill_game(game: Game):
    _require_live(game)
    end_game(game, None, "killed")


# ----------------------------------------------------------------------
# Rounds and activations
# ----------------------------------------------------------------------

def reset_activations(game: Game):
    """Activations equal the number of undefeated groups."""
    for player in game.players:
        total = len(game.active_groups(player.player_id))
        player.activations_total = total
        player.activations_remaining = total


def start_round(game: Game, data: Any) -> list[str]:
    game.current_round += 1
    game.activated_cards = []
    game.card_actions = {}
    game.active_card_key = None
    game.end_of_round_whose_turn = None
    for player in game.players:
        player.end_activation_signalled = False
        player.end_of_round_done = False
    reset_activations(game)
    game.current_activation_turn_player_id = game.initiative_player_id
    game.phase = GamePhase.ACTIVATION
    changes = [f"Round {game.current_round} begins, {game.initiative_player_id} has initiative"]
    game.log(changes[0])
    logger.info("Game %s: round %d started", game.game_id, game.current_round)
    changes.extend(run_start_of_round_rules(game, data))
    check_win_conditions(game)
    return changes


def _require_turn(game: Game, player_id: str):
    _require_phase(game, GamePhase.ACTIVATION)
    if game.current_activation_turn_player_id != player_id:
        raise ValidationError("Not your activation turn", error_code="NOT_YOUR_TURN")


def activate_card(game: Game, player_id: str, card_key: str):
    _require_turn(game, player_id)
    player = _require_player(game, player_id)
    if card_key not in game.card_keys_for(player_id):
        raise ValidationError(f"{card_key} is not one of your deployment cards")
    if card_key in game.activated_cards:
        raise ValidationError(f"{card_key} has already activated this round")
    if game.is_group_defeated(card_key):
        raise ValidationError(f"{card_key} has no figures left")
    if game.active_card_key and game.card_actions.get(game.active_card_key, 0) > 0:
        raise ValidationError(f"Finish the activation of {game.active_card_key} first")
    if game.pending_combat is not None:
        raise ValidationError("An attack is still being resolved")
    if player.activations_remaining <= 0:
        raise ValidationError("No activations remaining", error_code="INSUFFICIENT_RESOURCES")

    player.activations_remaining -= 1
    game.activated_cards.append(card_key)
    game.card_actions[card_key] = ACTIONS_PER_ACTIVATION
    game.active_card_key = card_key
    game.log(f"{player_id} activated {card_key}")


def require_action(game: Game, player_id: str, figure_key: str) -> str:
    """Check the figure belongs to the active card and has an action left."""
    _require_turn(game, player_id)
    card_key = card_key_of(figure_key)
    if game.owner_of(figure_key) != player_id or not game.position_of(figure_key):
        raise ValidationError(f"{figure_key} is not one of your figures on the map")
    if game.active_card_key != card_key:
        raise ValidationError(f"{card_key} is not the activated card")
    if game.card_actions.get(card_key, 0) <= 0:
        raise ValidationError("No actions remaining", error_code="INSUFFICIENT_RESOURCES")
    return card_key


def spend_action(game: Game, player_id: str, figure_key: str) -> int:
    card_key = require_action(game, player_id, figure_key)
    game.card_actions[card_key] -= 1
    return game.card_actions[card_key]


def end_turn(game: Game, player_id: str) -> list[str]:
    """End the current card's activation and pass the turn if the opponent can act."""
    _require_turn(game, player_id)
    if game.pending_combat is not None:
        raise ValidationError("Resolve the pending attack first")
    card_key = game.active_card_key
    if card_key is None:
        raise ValidationError("No activation in progress")
    game.card_actions[card_key] = 0
    for figure_key in list(game.move_in_progress):
        if card_key_of(figure_key) == card_key:
            del game.move_in_progress[figure_key]
    game.active_card_key = None

    changes = [f"{player_id} ended the activation of {card_key}"]
    opponent = game.opponent_id(player_id)
    if game.get_player(opponent).activations_remaining > 0:
        game.current_activation_turn_player_id = opponent
        changes.append(f"Turn passes to {opponent}")
    for message in changes:
        game.log(message)
    return changes


def pass_turn(game: Game, player_id: str) -> str:
    """Pass to an opponent with strictly more activations left. Returns the previous turn player."""
    _require_turn(game, player_id)
    if game.active_card_key and game.card_actions.get(game.active_card_key, 0) > 0:
        raise ValidationError("Finish the current activation first")
    opponent = game.opponent_id(player_id)
    mine = game.get_player(player_id).activations_remaining
    theirs = game.get_player(opponent).activations_remaining
    if theirs <= mine:
        raise ValidationError("You may only pass when your opponent has more activations remaining")
    previous = game.current_activation_turn_player_id
    game.current_activation_turn_player_id = opponent
    game.log(f"{player_id} passed the turn to {opponent}")
    return previous


def can_end_activation_phase(game: Game) -> tuple[bool, str]:
    for player in game.players:
        if player.activations_remaining > 0:
            return False, f"{player.player_id} has {player.activations_remaining} activation(s) remaining"
    for card_key, actions in game.card_actions.items():
        if actions > 0:
            return False, f"{card_key} has {actions} action(s) remaining"
    if game.pending_combat is not None:
        return False, "An attack is still being resolved"
    return True, ""


def end_activation_phase(game: Game, data: Any, player_id: str) -> list[str]:
    """
    Signal the end of the activation phase.

    Once both players have signalled, mission scoring runs and the
    end-of-round window opens for the initiative player.
    """
    _require_phase(game, GamePhase.ACTIVATION)
    player = _require_player(game, player_id)
    ok, reason = can_end_activation_phase(game)
    if not ok:
        raise ValidationError(reason)
    if player.end_activation_signalled:
        raise ValidationError(f"{player_id} has already ended the activation phase")
    player.end_activation_signalled = True
    changes = [f"{player_id} is ready to end the activation phase"]
    if not all(p.end_activation_signalled for p in game.players):
        return changes

    game.phase = GamePhase.STATUS
    game.active_card_key = None
    changes.extend(run_end_of_round_rules(game, data))
    if not game.ended:
        game.end_of_round_whose_turn = game.initiative_player_id
        changes.append(f"End of round: {game.initiative_player_id} may play end-of-round effects")
    for message in changes:
        game.log(message)
    return changes


def end_end_of_round_window(game: Game, data: Any, player_id: str) -> list[str]:
    _require_phase(game, GamePhase.STATUS)
    if game.end_of_round_whose_turn != player_id:
        raise ValidationError("Not your end-of-round window", error_code="NOT_YOUR_TURN")
    game.get_player(player_id).end_of_round_done = True
    opponent = game.opponent_id(player_id)
    if not game.get_player(opponent).end_of_round_done:
        game.end_of_round_whose_turn = opponent
        message = f"End of round: {opponent} may play end-of-round effects"
        game.log(message)
        return [message]
    game.end_of_round_whose_turn = None
    return run_status_phase(game, data)


def _draw(player: Any, count: int) -> list[str]:
    drawn = player.deck[:count]
    del player.deck[:count]
    player.hand.extend(drawn)
    return drawn


def run_status_phase(game: Game, data: Any) -> list[str]:
    """Ready cards, draw, pass initiative and start the next round."""
    changes = []
    game.activated_cards = []
    game.card_actions = {}
    game.active_card_key = None
    game.move_in_progress.clear()

    for player in game.players:
        if player.no_draw_next_status:
            player.no_draw_next_status = False
            changes.append(f"{player.player_id} draws no command cards this status phase")
        else:
            count = 1 + count_terminals_controlled(game, data, player.player_id)
            drawn = _draw(player, count)
            changes.append(f"{player.player_id} drew {len(drawn)} command card(s)")
        player.launch_panel_flipped_this_round = False

    game.undo_stack.clear()
    previous = game.initiative_player_id
    game.initiative_player_id = game.opponent_id(previous)
    changes.append(f"Initiative passes to {game.initiative_player_id}")
    for message in changes:
        game.log(message)
    changes.extend(start_round(game, data))
    return changes
